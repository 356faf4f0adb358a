# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
forgec: export compiler for Go packages.

Stages:
  parser:  declaration-level Go parsing (lark)
  scanner: marked declarations -> validated IR
  writer:  IR -> cgo shim + C header
  errchan: runtime error channel generated into every wrapper
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
