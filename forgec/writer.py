# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Shim and header emission.

Both artifacts are rendered from one `BoundaryPlan`, built from a single
sorted pass over the IR. The renderers never sort, filter or re-derive C
parameter lists on their own.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from forgec.errchan import (
	SENTRYWRAP_PACKAGE,
	ErrorChannelMode,
	channel_imports,
	invoke_expr,
	last_error_expr,
	render_inline_channel,
	render_sentrywrap_package,
)
from forgec.errors import ConfigError, InvalidSignatureError, WriteError
from forgec.ir import OUT_PARAM, CompilationUnit, ExportedFunction, ExportedStruct, ValueAndError
from forgec.typemap import AbiType

logger = logging.getLogger(__name__)

GENERATED_BANNER = "// Code generated by forgec. DO NOT EDIT."

FREE_SYMBOL = "capi_free"
LAST_ERROR_SYMBOL = "capi_last_error_json"

# Local name the shim gives the wrapped package.
IMPL_ALIAS = "impl"

_RESERVED_SYMBOLS = frozenset({FREE_SYMBOL, LAST_ERROR_SYMBOL, "main"})
_C_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass(frozen=True)
class EmitOptions:
	module_path: str
	prefix: str = "PM_"
	package_import: Optional[str] = None
	error_channel: ErrorChannelMode = ErrorChannelMode.INLINE
	gofmt: bool = False

	@property
	def impl_import(self) -> str:
		return self.package_import or f"{self.module_path}/internal"


@dataclass(frozen=True)
class CParam:
	name: str
	abi: AbiType
	pointer: bool = False

	def c_decl(self) -> str:
		return self.abi.c_pointer(self.name) if self.pointer else self.abi.c_decl(self.name)

	def cgo_decl(self) -> str:
		star = "*" if self.pointer else ""
		return f"{self.name} {star}{self.abi.cgo_type}"


@dataclass(frozen=True)
class PlannedFunction:
	function: ExportedFunction
	symbol: str
	c_params: Tuple[CParam, ...]


@dataclass(frozen=True)
class BoundaryPlan:
	functions: Tuple[PlannedFunction, ...]
	structs: Tuple[ExportedStruct, ...]


@dataclass(frozen=True)
class Artifact:
	path: Path
	content: str


def plan_boundary(unit: CompilationUnit, prefix: str) -> BoundaryPlan:
	if prefix and not _C_IDENT.fullmatch(prefix):
		raise ConfigError(f"C symbol prefix '{prefix}' is not a valid C identifier prefix")
	ordered = unit.sorted()
	planned: List[PlannedFunction] = []
	for fn in ordered.functions:
		symbol = f"{prefix}{fn.name}"
		if symbol in _RESERVED_SYMBOLS:
			raise InvalidSignatureError(
				f"C symbol '{symbol}' collides with a runtime entry point",
				path=fn.loc.file if fn.loc else None,
				line=fn.loc.line if fn.loc else None,
				decl=fn.name,
				constraint="unique-symbol",
			)
		params = [CParam(p.name, p.abi) for p in fn.params]
		if isinstance(fn.returns, ValueAndError):
			params.append(CParam(OUT_PARAM, fn.returns.abi, pointer=True))
		planned.append(PlannedFunction(function=fn, symbol=symbol, c_params=tuple(params)))
	return BoundaryPlan(functions=tuple(planned), structs=ordered.structs)


# --- header ---


def _prototype(pf: PlannedFunction) -> str:
	params = ", ".join(p.c_decl() for p in pf.c_params) or "void"
	return f"{AbiType.INT32.c_type} {pf.symbol}({params});"


def render_header(plan: BoundaryPlan) -> str:
	lines = [
		GENERATED_BANNER,
		"#pragma once",
		"",
		"#include <stdint.h>",
		"#include <stddef.h>",
		"",
		"#ifdef __cplusplus",
		'extern "C" {',
		"#endif",
		"",
	]
	lines.extend(_prototype(pf) for pf in plan.functions)
	if plan.functions:
		lines.append("")
	lines.append(f"const char* {LAST_ERROR_SYMBOL}(void);")
	lines.append(f"void {FREE_SYMBOL}(void* p);")
	lines.append("")
	for st in plan.structs:
		lines.append(f"typedef struct {st.name} {{")
		lines.extend(f"    {f.abi.c_decl(f.export_name)};" for f in st.fields)
		lines.append(f"}} {st.name};")
		lines.append("")
	lines.extend(["#ifdef __cplusplus", "}", "#endif"])
	return "\n".join(lines) + "\n"


# --- shim ---


def _go_imports(opts: EmitOptions) -> List[str]:
	std = sorted(channel_imports(opts.error_channel) + ["unsafe"])
	out = ["import ("]
	out.extend(f'\t"{path}"' for path in std)
	out.append("")
	third = [(opts.impl_import, f'\t{IMPL_ALIAS} "{opts.impl_import}"')]
	if opts.error_channel is ErrorChannelMode.SENTRYWRAP:
		path = f"{opts.module_path}/{SENTRYWRAP_PACKAGE}"
		third.append((path, f'\t"{path}"'))
	out.extend(line for _, line in sorted(third))
	out.append(")")
	return out


def _wrapper(pf: PlannedFunction, opts: EmitOptions) -> List[str]:
	fn = pf.function
	result = AbiType.INT32.cgo_type
	args = ", ".join(f"{p.go_type}({p.name})" for p in fn.params)
	call = f"{IMPL_ALIAS}.{fn.name}({args})"
	lines = [
		f"//export {pf.symbol}",
		f"func {pf.symbol}({', '.join(p.cgo_decl() for p in pf.c_params)}) {result} {{",
		f"\treturn {result}({invoke_expr(opts.error_channel)}(func() error {{",
	]
	if isinstance(fn.returns, ValueAndError):
		lines.extend(
			[
				f"\t\tres, err := {call}",
				"\t\tif err != nil {",
				"\t\t\treturn err",
				"\t\t}",
				f"\t\tif {OUT_PARAM} != nil {{",
				f"\t\t\t*{OUT_PARAM} = {fn.returns.abi.cgo_type}(res)",
				"\t\t}",
				"\t\treturn nil",
			]
		)
	else:
		lines.append(f"\t\treturn {call}")
	lines.extend(["\t}))", "}"])
	return lines


def render_shim(plan: BoundaryPlan, opts: EmitOptions) -> str:
	lines = [
		GENERATED_BANNER,
		"",
		"package main",
		"",
		"/*",
		"#include <stdlib.h>",
		"#include <stdint.h>",
		"*/",
		'import "C"',
		"",
	]
	lines.extend(_go_imports(opts))
	lines.append("")
	if opts.error_channel is ErrorChannelMode.INLINE:
		lines.append(render_inline_channel())
	lines.extend(
		[
			f"//export {FREE_SYMBOL}",
			f"func {FREE_SYMBOL}(p unsafe.Pointer) {{ C.free(p) }}",
			"",
			f"//export {LAST_ERROR_SYMBOL}",
			f"func {LAST_ERROR_SYMBOL}() *C.char {{",
			f"\treturn C.CString({last_error_expr(opts.error_channel)})",
			"}",
			"",
		]
	)
	for pf in plan.functions:
		lines.extend(_wrapper(pf, opts))
		lines.append("")
	lines.append("func main() {}")
	return "\n".join(lines) + "\n"


# --- formatting and writing ---


def gofmt_source(source: str, *, path: Path) -> str:
	"""Run `gofmt` over `source`; any failure is a `WriteError` naming `path`."""
	exe = shutil.which("gofmt")
	if exe is None:
		raise WriteError("gofmt requested but not found on PATH", path=str(path))
	res = subprocess.run([exe], input=source, capture_output=True, text=True, check=False)
	if res.returncode != 0:
		raise WriteError(f"gofmt failed: {res.stderr.strip()}", path=str(path))
	return res.stdout


def build_artifacts(unit: CompilationUnit, opts: EmitOptions, *, shim_path: Path, header_path: Path) -> List[Artifact]:
	"""Render every artifact in memory. Nothing touches the filesystem yet."""
	plan = plan_boundary(unit, opts.prefix)
	artifacts = [
		Artifact(Path(shim_path), render_shim(plan, opts)),
		Artifact(Path(header_path), render_header(plan)),
	]
	if opts.error_channel is ErrorChannelMode.SENTRYWRAP:
		sentry_path = Path(shim_path).parent / SENTRYWRAP_PACKAGE / f"{SENTRYWRAP_PACKAGE}.go"
		artifacts.append(Artifact(sentry_path, render_sentrywrap_package()))
	if opts.gofmt:
		artifacts = [
			Artifact(a.path, gofmt_source(a.content, path=a.path)) if a.path.suffix == ".go" else a
			for a in artifacts
		]
	return artifacts


def _staging_path(path: Path) -> Path:
	return path.with_name(path.name + f".tmp.{os.getpid()}")


def _backup_path(path: Path) -> Path:
	return path.with_name(path.name + f".bak.{os.getpid()}")


def write_artifacts(artifacts: Sequence[Artifact]) -> List[Path]:
	"""
	Write all artifacts or none.

	Each artifact is staged next to its destination, then every staged file is
	moved into place with `os.replace`. A staging failure removes whatever was
	staged and leaves existing outputs untouched. Existing outputs are moved
	aside before being replaced; if a later replace fails, the outputs already
	swapped in are rolled back to those copies.
	"""
	staged: List[Tuple[Path, Path]] = []
	try:
		for art in artifacts:
			art.path.parent.mkdir(parents=True, exist_ok=True)
			tmp = _staging_path(art.path)
			staged.append((tmp, art.path))
			tmp.write_text(art.content, encoding="utf-8")
	except OSError as err:
		_discard(tmp for tmp, _ in staged)
		raise WriteError(f"cannot stage artifact: {err.strerror or err}", path=str(art.path)) from err

	# (destination, backup or None when the destination did not exist)
	swapped: List[Tuple[Path, Optional[Path]]] = []
	for idx, (tmp, dest) in enumerate(staged):
		try:
			backup = None
			if dest.exists():
				backup = _backup_path(dest)
				os.replace(dest, backup)
			swapped.append((dest, backup))
			os.replace(tmp, dest)
		except OSError as err:
			_rollback(swapped)
			_discard(t for t, _ in staged[idx:])
			raise WriteError(f"cannot replace artifact: {err.strerror or err}", path=str(dest)) from err
		logger.debug("wrote %s", dest)

	_discard(backup for _, backup in swapped if backup is not None)
	return [dest for _, dest in staged]


def _rollback(swapped: Sequence[Tuple[Path, Optional[Path]]]) -> None:
	for dest, backup in reversed(swapped):
		try:
			if backup is None:
				dest.unlink(missing_ok=True)
			else:
				os.replace(backup, dest)
		except OSError as err:
			logger.error("cannot restore %s: %s", dest, err.strerror or err)


def _discard(paths: Iterable[Path]) -> None:
	for p in paths:
		try:
			p.unlink()
		except FileNotFoundError:
			pass


__all__ = [
	"GENERATED_BANNER",
	"FREE_SYMBOL",
	"LAST_ERROR_SYMBOL",
	"EmitOptions",
	"CParam",
	"PlannedFunction",
	"BoundaryPlan",
	"Artifact",
	"plan_boundary",
	"render_header",
	"render_shim",
	"gofmt_source",
	"build_artifacts",
	"write_artifacts",
]
