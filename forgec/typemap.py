# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Go source type -> C ABI type mapping.

The table is closed: a type either maps under one of the rows below or is
rejected with `UnsupportedTypeError`. Nothing here touches the filesystem or
keeps state, so the scanner and both renderers can call it freely.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from forgec.errors import InvalidSignatureError, UnsupportedTypeError
from forgec.parser.ast import MapType, NamedType, TypeExpr


class AbiType(Enum):
	"""C-side representation of a boundary value: (C spelling, cgo spelling)."""

	INT32 = ("int32_t", "C.int32_t")
	INT64 = ("int64_t", "C.int64_t")
	DOUBLE = ("double", "C.double")
	CSTRING = ("const char*", "*C.char")

	@property
	def c_type(self) -> str:
		return self.value[0]

	@property
	def cgo_type(self) -> str:
		return self.value[1]

	def c_decl(self, name: str) -> str:
		"""`int32_t x` / `const char* x`."""
		return f"{self.c_type} {name}"

	def c_pointer(self, name: str) -> str:
		return f"{self.c_type}* {name}"


class Conversion(Enum):
	DIRECT = "direct"
	C_STRING = "c-string"
	BOOL_INT = "bool-int"
	UNIX_SECONDS = "unix-seconds"
	JSON = "json"


@dataclass(frozen=True)
class FieldMapping:
	abi: AbiType
	export_name: str
	conversion: Conversion


# Go builtin name -> (ABI type, conversion).
_SCALARS: dict[str, tuple[AbiType, Conversion]] = {
	"int32": (AbiType.INT32, Conversion.DIRECT),
	"int64": (AbiType.INT64, Conversion.DIRECT),
	"string": (AbiType.CSTRING, Conversion.C_STRING),
	"bool": (AbiType.INT32, Conversion.BOOL_INT),
	"float64": (AbiType.DOUBLE, Conversion.DIRECT),
}

# Parameters and return values cross the boundary as plain integers only.
_PARAM_SCALARS = ("int32", "int64")

_TIME_IMPORT = "time"


def _builtin_name(ty: TypeExpr) -> Optional[str]:
	if isinstance(ty, NamedType) and ty.qualifier is None and not ty.args:
		return ty.name
	return None


def map_scalar(ty: TypeExpr) -> AbiType:
	name = _builtin_name(ty)
	if name is None or name not in _SCALARS:
		raise UnsupportedTypeError(f"type '{ty}' has no ABI mapping", source_type=str(ty))
	return _SCALARS[name][0]


def map_param(ty: TypeExpr) -> AbiType:
	"""ABI type for a function parameter or the value half of `(T, error)`."""
	name = _builtin_name(ty)
	if name not in _PARAM_SCALARS:
		raise UnsupportedTypeError(
			f"type '{ty}' is not allowed at the call boundary (expected int32 or int64)",
			source_type=str(ty),
		)
	return map_scalar(ty)


def is_time_type(ty: TypeExpr, imports: Optional[Mapping[str, str]] = None) -> bool:
	"""
	True for `time.Time`, following the file's import table.

	`imports` maps local package names to import paths; without it the
	qualifier is taken literally.
	"""
	if not isinstance(ty, NamedType) or ty.qualifier is None or ty.args or ty.name != "Time":
		return False
	if imports is None:
		return ty.qualifier == _TIME_IMPORT
	return imports.get(ty.qualifier) == _TIME_IMPORT


def is_json_map_type(ty: TypeExpr) -> bool:
	return isinstance(ty, MapType) and _builtin_name(ty.key) == "string" and _builtin_name(ty.value) == "int64"


def map_field(name: str, ty: TypeExpr, imports: Optional[Mapping[str, str]] = None) -> FieldMapping:
	if is_time_type(ty, imports):
		return FieldMapping(AbiType.INT64, f"{name}Unix", Conversion.UNIX_SECONDS)
	if is_json_map_type(ty):
		return FieldMapping(AbiType.CSTRING, f"{name}JSON", Conversion.JSON)
	builtin = _builtin_name(ty)
	if builtin in _SCALARS:
		abi, conversion = _SCALARS[builtin]
		return FieldMapping(abi, name, conversion)
	raise UnsupportedTypeError(f"field type '{ty}' has no ABI mapping", field=name, source_type=str(ty))


_C_KEYWORDS = frozenset(
	{
		"auto", "break", "case", "char", "const", "continue", "default", "do",
		"double", "else", "enum", "extern", "float", "for", "goto", "if",
		"inline", "int", "long", "register", "restrict", "return", "short",
		"signed", "sizeof", "static", "struct", "switch", "typedef", "union",
		"unsigned", "void", "volatile", "_Bool", "_Complex", "_Imaginary",
		"bool", "true", "false",
	}
)

# Identifiers the generated wrappers reference; a parameter with one of these
# names would shadow it inside the wrapper body.
_SHIM_NAMES = frozenset({"C", "impl", "capiErrors", "sentrywrap", "int32", "int64", "unsafe"})


def check_boundary_name(name: str, *, reserved: frozenset[str] = frozenset(), shim: bool = True) -> None:
	"""
	Reject identifiers that cannot appear in the generated code.

	Struct members only have to be valid C (`shim=False`); parameters also live
	inside the Go wrapper and must not shadow what it references.
	"""
	if name in _C_KEYWORDS:
		raise InvalidSignatureError(
			f"'{name}' is a C keyword and cannot be used at the boundary",
			field=name,
			constraint="boundary-name",
		)
	if (shim and name in _SHIM_NAMES) or name in reserved:
		raise InvalidSignatureError(
			f"'{name}' is reserved by the generated shim",
			field=name,
			constraint="boundary-name",
		)


__all__ = [
	"AbiType",
	"Conversion",
	"FieldMapping",
	"map_scalar",
	"map_param",
	"map_field",
	"is_time_type",
	"is_json_map_type",
	"check_boundary_name",
]
