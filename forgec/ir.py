# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Export IR.

One `CompilationUnit` is produced per run by the scanner and consumed by both
renderers. Every value here has already been validated and type-mapped. The
shim spells parameter conversions from `ExportParam.go_type`; struct fields
keep their source type and `Conversion` so the boundary layout of each
member is recorded next to its C spelling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from forgec.parser.ast import Located
from forgec.typemap import AbiType, Conversion


@dataclass(frozen=True)
class ExportParam:
	name: str
	go_type: str
	abi: AbiType


@dataclass(frozen=True)
class ErrorOnly:
	"""`func F(...) error`"""


@dataclass(frozen=True)
class ValueAndError:
	"""`func F(...) (T, error)`; `T` is returned through an out-pointer."""

	value_type: str
	abi: AbiType


ReturnShape = Union[ErrorOnly, ValueAndError]


@dataclass(frozen=True)
class ExportedFunction:
	name: str
	params: Tuple[ExportParam, ...]
	returns: ReturnShape
	loc: Optional[Located] = None


@dataclass(frozen=True)
class ExportedField:
	source_name: str
	source_type: str
	abi: AbiType
	export_name: str
	conversion: Conversion = Conversion.DIRECT


@dataclass(frozen=True)
class ExportedStruct:
	name: str
	fields: Tuple[ExportedField, ...]
	loc: Optional[Located] = None


@dataclass(frozen=True)
class CompilationUnit:
	functions: Tuple[ExportedFunction, ...] = ()
	structs: Tuple[ExportedStruct, ...] = ()

	def sorted(self) -> "CompilationUnit":
		"""Same unit with functions and structs ordered by name."""
		return CompilationUnit(
			functions=tuple(sorted(self.functions, key=lambda f: f.name)),
			structs=tuple(sorted(self.structs, key=lambda s: s.name)),
		)

	def is_empty(self) -> bool:
		return not self.functions


# Name of the result pointer appended to value-shaped wrappers.
OUT_PARAM = "out"


def positional_name(index: int) -> str:
	return f"p{index}"


__all__ = [
	"ExportParam",
	"ErrorOnly",
	"ValueAndError",
	"ReturnShape",
	"ExportedFunction",
	"ExportedField",
	"ExportedStruct",
	"CompilationUnit",
	"OUT_PARAM",
	"positional_name",
]
