# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from forgec.cli import main

raise SystemExit(main())
