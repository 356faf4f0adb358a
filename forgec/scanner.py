# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Marked-declaration scanner.

Reads every `*.go` file directly inside a package directory, picks the
declarations whose doc comment carries the export marker, validates their
shape and maps their types. The first invalid declaration aborts the scan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Mapping, Optional, Union, assert_never

from forgec.errors import ForgeError, InvalidSignatureError, ScanIOError, UnsupportedTypeError
from forgec.ir import (
	CompilationUnit,
	ErrorOnly,
	ExportedField,
	ExportedFunction,
	ExportedStruct,
	ExportParam,
	OUT_PARAM,
	ReturnShape,
	ValueAndError,
	positional_name,
)
from forgec.parser import GoSyntaxError, parse_go_file
from forgec.parser.ast import (
	CommentGroup,
	FuncDecl,
	GoFile,
	Located,
	NamedType,
	Param,
	StructType,
	TypeDecl,
	TypeSpec,
	ValueDecl,
)
from forgec.typemap import check_boundary_name, map_field, map_param

logger = logging.getLogger(__name__)

DEFAULT_MARKER = "capi:export"


@dataclass(frozen=True)
class FunctionDecl:
	decl: FuncDecl
	file: GoFile


@dataclass(frozen=True)
class StructTypeDecl:
	spec: TypeSpec
	file: GoFile


@dataclass(frozen=True)
class IgnoredDecl:
	what: str
	loc: Located


MarkedDecl = Union[FunctionDecl, StructTypeDecl, IgnoredDecl]


def scan_package(pkg_dir: Path, *, marker: str = DEFAULT_MARKER) -> CompilationUnit:
	pkg_dir = Path(pkg_dir)
	if not pkg_dir.exists():
		raise ScanIOError("package directory does not exist", path=str(pkg_dir))
	if not pkg_dir.is_dir():
		raise ScanIOError("package path is not a directory", path=str(pkg_dir))

	files = [f for f in _load_package(pkg_dir) if not f.package.endswith("_test")]
	_check_single_package(files, pkg_dir)

	functions: List[ExportedFunction] = []
	structs: List[ExportedStruct] = []
	seen: dict[str, Located] = {}
	for marked in _marked_decls(files, marker):
		if isinstance(marked, FunctionDecl):
			fn = build_function(marked.decl)
			_claim_name(seen, fn.name, fn.loc)
			functions.append(fn)
		elif isinstance(marked, StructTypeDecl):
			st = build_struct(marked.spec, marked.file.import_table())
			_claim_name(seen, st.name, st.loc)
			structs.append(st)
		elif isinstance(marked, IgnoredDecl):
			logger.warning("%s: %s is marked %s but cannot be exported; ignored", marked.loc, marked.what, marker)
		else:
			assert_never(marked)

	logger.debug("scanned %s: %d function(s), %d struct(s)", pkg_dir, len(functions), len(structs))
	return CompilationUnit(functions=tuple(functions), structs=tuple(structs))


def _load_package(pkg_dir: Path) -> Iterator[GoFile]:
	try:
		entries = sorted(pkg_dir.iterdir())
	except OSError as err:
		raise ScanIOError(f"cannot list package directory: {err.strerror or err}", path=str(pkg_dir)) from err
	for path in entries:
		# Same file selection as `go build`.
		if path.suffix != ".go" or path.name.startswith((".", "_")) or path.name.endswith("_test.go") or not path.is_file():
			continue
		try:
			go_file = parse_go_file(path)
		except (OSError, UnicodeDecodeError) as err:
			raise ScanIOError(f"cannot read source file: {err}", path=str(path)) from err
		except GoSyntaxError as err:
			raise ScanIOError(f"syntax error: {err}", path=str(path), line=err.loc.line or None) from err
		logger.debug("parsed %s (package %s, %d decl(s))", path, go_file.package, len(go_file.decls))
		yield go_file


def _check_single_package(files: List[GoFile], pkg_dir: Path) -> None:
	names = sorted({f.package for f in files})
	if len(names) > 1:
		raise ScanIOError(f"found packages {', '.join(names)} in one directory", path=str(pkg_dir))


def _claim_name(seen: dict[str, Located], name: str, loc: Optional[Located]) -> None:
	prev = seen.get(name)
	if prev is not None:
		raise InvalidSignatureError(
			f"exported more than once (first at {prev})",
			path=loc.file if loc else None,
			line=loc.line if loc else None,
			decl=name,
			constraint="unique-export-name",
		)
	if loc is not None:
		seen[name] = loc


def _is_marked(doc: Optional[CommentGroup], marker: str) -> bool:
	return doc is not None and doc.has_directive(marker)


def _marked_decls(files: List[GoFile], marker: str) -> Iterator[MarkedDecl]:
	for go_file in files:
		for decl in go_file.decls:
			if isinstance(decl, FuncDecl):
				if _is_marked(decl.doc, marker):
					yield FunctionDecl(decl, go_file)
			elif isinstance(decl, TypeDecl):
				for spec in decl.specs:
					# `// marker` above `type X struct{}` belongs to the decl;
					# inside `type ( ... )` each spec carries its own.
					if not (_is_marked(spec.doc, marker) or (_is_marked(decl.doc, marker) and len(decl.specs) == 1)):
						continue
					if isinstance(spec.type, StructType) and not spec.is_alias:
						yield StructTypeDecl(spec, go_file)
					else:
						yield IgnoredDecl(f"type '{spec.name}'", spec.loc)
			elif isinstance(decl, ValueDecl):
				if _is_marked(decl.doc, marker):
					yield IgnoredDecl(f"{decl.keyword} declaration", decl.loc)
			else:
				assert_never(decl)


def _signature_error(decl: FuncDecl, message: str, constraint: str, field: Optional[str] = None) -> InvalidSignatureError:
	return InvalidSignatureError(
		message,
		path=decl.loc.file,
		line=decl.loc.line,
		decl=decl.name,
		field=field,
		constraint=constraint,
	)


def _is_error_type(param: Param) -> bool:
	ty = param.type
	return isinstance(ty, NamedType) and ty.name == "error" and ty.qualifier is None and not ty.args


def _return_shape(decl: FuncDecl) -> ReturnShape:
	results = decl.results
	if len(results) == 1 and _is_error_type(results[0]):
		return ErrorOnly()
	if len(results) == 2 and _is_error_type(results[1]):
		value = results[0]
		try:
			abi = map_param(value.type)
		except UnsupportedTypeError as err:
			raise UnsupportedTypeError(
				f"return value type '{value.type}' is not supported (expected int32 or int64)",
				path=decl.loc.file,
				line=decl.loc.line,
				decl=decl.name,
				source_type=err.source_type,
			) from err
		return ValueAndError(value_type=str(value.type), abi=abi)
	shown = ", ".join(str(r.type) for r in results) or "nothing"
	raise _signature_error(
		decl,
		f"must return 'error' or '(int32|int64, error)', not ({shown})",
		"return-shape",
	)


def build_function(decl: FuncDecl) -> ExportedFunction:
	"""Validate a marked `func` and lower it to IR."""
	if decl.receiver is not None:
		raise _signature_error(decl, "methods cannot be exported", "no-receiver")
	if decl.type_params:
		raise _signature_error(decl, "generic functions cannot be exported", "no-type-params")

	returns = _return_shape(decl)
	reserved = frozenset({OUT_PARAM}) if isinstance(returns, ValueAndError) else frozenset()

	params: List[ExportParam] = []
	names: set[str] = set()
	for idx, param in enumerate(decl.params):
		name = param.name if param.name and param.name != "_" else positional_name(idx)
		if param.variadic:
			raise _signature_error(decl, "variadic parameters cannot be exported", "no-variadic", field=name)
		try:
			abi = map_param(param.type)
			check_boundary_name(name, reserved=reserved)
		except UnsupportedTypeError as err:
			raise UnsupportedTypeError(
				f"parameter type '{param.type}' is not supported (expected int32 or int64)",
				path=decl.loc.file,
				line=decl.loc.line,
				decl=decl.name,
				field=name,
				source_type=err.source_type,
			) from err
		except InvalidSignatureError as err:
			raise _signature_error(decl, err.message, "boundary-name", field=name) from err
		if name in names:
			raise _signature_error(decl, "duplicate parameter name", "unique-param-name", field=name)
		names.add(name)
		params.append(ExportParam(name=name, go_type=str(param.type), abi=abi))

	return ExportedFunction(name=decl.name, params=tuple(params), returns=returns, loc=decl.loc)


def build_struct(spec: TypeSpec, imports: Optional[Mapping[str, str]] = None) -> ExportedStruct:
	"""Validate a marked struct type and map its fields in declaration order."""
	loc = spec.loc
	if spec.type_params:
		raise UnsupportedTypeError(
			"generic struct types cannot be exported",
			path=loc.file,
			line=loc.line,
			decl=spec.name,
			source_type=f"{spec.name}[{', '.join(spec.type_params)}]",
		)
	assert isinstance(spec.type, StructType)

	fields: List[ExportedField] = []
	exported: dict[str, str] = {}
	for fld in spec.type.fields:
		if fld.embedded:
			logger.debug("%s: %s: embedded field %s dropped", loc, spec.name, fld.type)
			continue
		for name in fld.names:
			if name == "_":
				continue
			try:
				mapping = map_field(name, fld.type, imports)
				check_boundary_name(mapping.export_name, shim=False)
			except ForgeError as err:
				raise type(err)(
					err.message,
					path=fld.loc.file,
					line=fld.loc.line,
					decl=spec.name,
					field=name,
					**_extra(err),
				) from err
			clash = exported.get(mapping.export_name)
			if clash is not None:
				raise InvalidSignatureError(
					f"C member '{mapping.export_name}' is produced by both '{clash}' and '{name}'",
					path=fld.loc.file,
					line=fld.loc.line,
					decl=spec.name,
					field=name,
					constraint="unique-field-name",
				)
			exported[mapping.export_name] = name
			fields.append(
				ExportedField(
					source_name=name,
					source_type=str(fld.type),
					abi=mapping.abi,
					export_name=mapping.export_name,
					conversion=mapping.conversion,
				)
			)

	if not fields:
		raise InvalidSignatureError(
			"exported struct has no fields to map",
			path=loc.file,
			line=loc.line,
			decl=spec.name,
			constraint="non-empty-struct",
		)
	return ExportedStruct(name=spec.name, fields=tuple(fields), loc=loc)


def _extra(err: ForgeError) -> dict[str, Optional[str]]:
	if isinstance(err, UnsupportedTypeError):
		return {"source_type": err.source_type}
	if isinstance(err, InvalidSignatureError):
		return {"constraint": err.constraint}
	return {}


__all__ = [
	"DEFAULT_MARKER",
	"FunctionDecl",
	"StructTypeDecl",
	"IgnoredDecl",
	"MarkedDecl",
	"scan_package",
	"build_function",
	"build_struct",
]
