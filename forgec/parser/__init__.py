# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from . import ast
from .parser import GoSyntaxError, TerminatorInserter, parse_go_file, parse_source

__all__ = ["ast", "GoSyntaxError", "TerminatorInserter", "parse_go_file", "parse_source"]
