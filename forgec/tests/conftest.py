# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable

import pytest


@pytest.fixture
def go_package(tmp_path: Path) -> Callable[..., Path]:
	"""
	Write Go sources into a package directory under `tmp_path`.

	Returns a factory: `go_package({"calc.go": "..."}, dirname="internal")`.
	Sources are dedented so tests can indent them inline.
	"""

	def make(files: dict[str, str], *, dirname: str = "internal") -> Path:
		pkg = tmp_path / dirname
		pkg.mkdir(parents=True, exist_ok=True)
		for name, src in files.items():
			(pkg / name).write_text(textwrap.dedent(src).lstrip("\n"), encoding="utf-8")
		return pkg

	return make
