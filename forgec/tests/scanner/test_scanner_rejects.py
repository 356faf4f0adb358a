from __future__ import annotations

from pathlib import Path

import pytest

from forgec.errors import InvalidSignatureError, ScanIOError, UnsupportedTypeError
from forgec.scanner import scan_package


def _one(go_package, body: str, imports: str = "") -> Path:
	return go_package({"a.go": f"package internal\n{imports}\n{body}"})


def test_missing_directory(tmp_path: Path) -> None:
	with pytest.raises(ScanIOError) as excinfo:
		scan_package(tmp_path / "nope")
	assert excinfo.value.path == str(tmp_path / "nope")
	assert excinfo.value.reason_code == "scan-io"


def test_path_is_a_file(tmp_path: Path) -> None:
	f = tmp_path / "a.go"
	f.write_text("package x\n")
	with pytest.raises(ScanIOError):
		scan_package(f)


def test_syntax_error_is_scan_io_with_location(go_package) -> None:
	pkg = go_package({"bad.go": "package internal\n\nfunc F( {\n"})
	with pytest.raises(ScanIOError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.path.endswith("bad.go")
	assert excinfo.value.line == 3


def test_undecodable_source_is_scan_io(go_package) -> None:
	pkg = go_package({"ok.go": "package internal\n"})
	(pkg / "latin.go").write_bytes(b"package internal\n\n// caf\xe9\n")
	with pytest.raises(ScanIOError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.path == str(pkg / "latin.go")
	assert excinfo.value.message.startswith("cannot read source file")


def test_mixed_packages_in_one_directory(go_package) -> None:
	pkg = go_package({"a.go": "package one\n", "b.go": "package two\n"})
	with pytest.raises(ScanIOError) as excinfo:
		scan_package(pkg)
	assert "one, two" in excinfo.value.message


@pytest.mark.parametrize(
	"signature, constraint",
	[
		("func F() (int32, int64, error)", "return-shape"),
		("func F() int32", "return-shape"),
		("func F()", "return-shape"),
		("func F() (error, int32)", "return-shape"),
		("func (s *S) F() error", "no-receiver"),
		("func F[T any](x int32) error", "no-type-params"),
		("func F(xs ...int32) error", "no-variadic"),
		("func F(a int32, a int64) error", "unique-param-name"),
		("func F(int int32) error", "boundary-name"),
		("func F(impl int32) error", "boundary-name"),
		("func F(out int32) (int32, error)", "boundary-name"),
	],
)
def test_invalid_function_shapes(go_package, signature: str, constraint: str) -> None:
	pkg = _one(go_package, f"// capi:export\n{signature} {{ panic(0) }}\n")
	with pytest.raises(InvalidSignatureError) as excinfo:
		scan_package(pkg)
	err = excinfo.value
	assert err.constraint == constraint
	assert err.decl == "F"
	assert err.line == 4


def test_out_is_a_plain_name_for_error_only_functions(go_package) -> None:
	pkg = _one(go_package, "// capi:export\nfunc F(out int32) error { return nil }\n")
	(fn,) = scan_package(pkg).functions
	assert fn.params[0].name == "out"


@pytest.mark.parametrize(
	"signature, field, source_type",
	[
		("func F(name string) error", "name", "string"),
		("func F(x float64) error", "x", "float64"),
		("func F(p *int32) error", "p", "*int32"),
		("func F(n int) error", "n", "int"),
		("func F(string) error", "p0", "string"),
	],
)
def test_unsupported_parameter_types(go_package, signature: str, field: str, source_type: str) -> None:
	pkg = _one(go_package, f"// capi:export\n{signature} {{ return nil }}\n")
	with pytest.raises(UnsupportedTypeError) as excinfo:
		scan_package(pkg)
	err = excinfo.value
	assert (err.decl, err.field, err.source_type) == ("F", field, source_type)


def test_unsupported_return_value_type(go_package) -> None:
	pkg = _one(go_package, "// capi:export\nfunc F() (string, error) { return \"\", nil }\n")
	with pytest.raises(UnsupportedTypeError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.source_type == "string"
	assert excinfo.value.decl == "F"


def test_unsupported_struct_field_names_struct_and_field(go_package) -> None:
	pkg = _one(
		go_package,
		"// capi:export\ntype Save struct {\n\tOK int32\n\tTags []string\n}\n",
	)
	with pytest.raises(UnsupportedTypeError) as excinfo:
		scan_package(pkg)
	err = excinfo.value
	assert (err.decl, err.field, err.source_type) == ("Save", "Tags", "[]string")
	assert err.line == 6
	assert err.format_human().endswith("Save.Tags: field type '[]string' has no ABI mapping")


def test_nested_struct_field_is_unsupported(go_package) -> None:
	pkg = _one(go_package, "// capi:export\ntype Outer struct {\n\tIn Inner\n}\n\ntype Inner struct{ X int32 }\n")
	with pytest.raises(UnsupportedTypeError):
		scan_package(pkg)


def test_generic_struct_is_unsupported(go_package) -> None:
	pkg = _one(go_package, "// capi:export\ntype Box[T any] struct {\n\tV int32\n}\n")
	with pytest.raises(UnsupportedTypeError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.decl == "Box"


def test_colliding_c_member_names(go_package) -> None:
	pkg = _one(
		go_package,
		"// capi:export\ntype Ev struct {\n\tAt time.Time\n\tAtUnix int64\n}\n",
		imports='import "time"\n',
	)
	with pytest.raises(InvalidSignatureError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.constraint == "unique-field-name"
	assert excinfo.value.field == "AtUnix"


def test_struct_without_mappable_fields(go_package) -> None:
	pkg = _one(go_package, "// capi:export\ntype Empty struct{}\n")
	with pytest.raises(InvalidSignatureError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.constraint == "non-empty-struct"


def test_duplicate_export_across_files(go_package) -> None:
	pkg = go_package(
		{
			"a.go": "package internal\n\n// capi:export\nfunc F() error { return nil }\n",
			"b.go": "package internal\n\n// capi:export\ntype F struct{ X int32 }\n",
		}
	)
	with pytest.raises(InvalidSignatureError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.constraint == "unique-export-name"


def test_first_invalid_declaration_wins(go_package) -> None:
	pkg = _one(
		go_package,
		"// capi:export\nfunc A(s string) error { return nil }\n\n// capi:export\nfunc B() int32 { return 0 }\n",
	)
	with pytest.raises(UnsupportedTypeError) as excinfo:
		scan_package(pkg)
	assert excinfo.value.decl == "A"
