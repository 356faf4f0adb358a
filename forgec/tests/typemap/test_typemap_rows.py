from __future__ import annotations

import pytest

from forgec.errors import InvalidSignatureError, UnsupportedTypeError
from forgec.parser.ast import MapType, NamedType, PointerType, SliceType
from forgec.typemap import AbiType, Conversion, check_boundary_name, map_field, map_param, map_scalar

INT32 = NamedType("int32")
INT64 = NamedType("int64")
STRING = NamedType("string")
BOOL = NamedType("bool")
FLOAT64 = NamedType("float64")
TIME = NamedType("Time", qualifier="time")
CLOCK = MapType(STRING, INT64)


@pytest.mark.parametrize(
	"ty, abi",
	[
		(INT32, AbiType.INT32),
		(INT64, AbiType.INT64),
		(STRING, AbiType.CSTRING),
		(BOOL, AbiType.INT32),
		(FLOAT64, AbiType.DOUBLE),
	],
)
def test_scalar_rows(ty: NamedType, abi: AbiType) -> None:
	assert map_scalar(ty) is abi


def test_abi_spellings() -> None:
	assert AbiType.INT32.c_decl("a") == "int32_t a"
	assert AbiType.INT64.c_pointer("out") == "int64_t* out"
	assert AbiType.CSTRING.c_decl("Name") == "const char* Name"
	assert AbiType.DOUBLE.cgo_type == "C.double"
	assert AbiType.CSTRING.cgo_type == "*C.char"


def test_params_accept_only_fixed_width_integers() -> None:
	assert map_param(INT32) is AbiType.INT32
	assert map_param(INT64) is AbiType.INT64
	for ty in (STRING, BOOL, FLOAT64, NamedType("int"), PointerType(INT32), SliceType(INT32)):
		with pytest.raises(UnsupportedTypeError) as excinfo:
			map_param(ty)
		assert excinfo.value.source_type == str(ty)


def test_timestamp_field_is_renamed_to_unix_seconds() -> None:
	m = map_field("Timestamp", TIME)
	assert (m.abi, m.export_name, m.conversion) == (AbiType.INT64, "TimestampUnix", Conversion.UNIX_SECONDS)
	assert f"{m.abi.c_decl(m.export_name)};" == "int64_t TimestampUnix;"


def test_string_int64_map_field_is_json() -> None:
	m = map_field("VectorClock", CLOCK)
	assert (m.abi, m.export_name, m.conversion) == (AbiType.CSTRING, "VectorClockJSON", Conversion.JSON)
	assert f"{m.abi.c_decl(m.export_name)};" == "const char* VectorClockJSON;"


def test_scalar_fields_keep_their_name() -> None:
	assert map_field("Active", BOOL).conversion is Conversion.BOOL_INT
	assert map_field("Name", STRING).export_name == "Name"
	assert map_field("Score", FLOAT64).abi is AbiType.DOUBLE


def test_time_qualifier_follows_import_aliases() -> None:
	aliased = NamedType("Time", qualifier="t")
	assert map_field("At", aliased, {"t": "time"}).export_name == "AtUnix"
	with pytest.raises(UnsupportedTypeError):
		map_field("At", TIME, {"time": "example.com/fake/time2"})
	with pytest.raises(UnsupportedTypeError):
		map_field("At", aliased)


@pytest.mark.parametrize(
	"ty",
	[
		MapType(STRING, INT32),
		MapType(INT64, INT64),
		SliceType(STRING),
		PointerType(INT64),
		NamedType("Other"),
		NamedType("uint32"),
	],
)
def test_unsupported_field_types_name_the_type(ty) -> None:
	with pytest.raises(UnsupportedTypeError) as excinfo:
		map_field("F", ty)
	assert excinfo.value.field == "F"
	assert excinfo.value.source_type == str(ty)


def test_boundary_names() -> None:
	check_boundary_name("count")
	check_boundary_name("impl", shim=False)
	for bad in ("int", "char", "return", "impl", "C", "capiErrors"):
		with pytest.raises(InvalidSignatureError):
			check_boundary_name(bad)
	with pytest.raises(InvalidSignatureError):
		check_boundary_name("out", reserved=frozenset({"out"}))
	with pytest.raises(InvalidSignatureError):
		check_boundary_name("double", shim=False)
