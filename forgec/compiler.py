# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from forgec.errchan import ErrorChannelMode
from forgec.ir import CompilationUnit
from forgec.scanner import DEFAULT_MARKER, scan_package
from forgec.writer import EmitOptions, build_artifacts, write_artifacts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileOptions:
	source_dir: Path
	shim_path: Path
	header_path: Path
	module_path: str
	prefix: str = "PM_"
	marker: str = DEFAULT_MARKER
	error_channel: ErrorChannelMode = ErrorChannelMode.INLINE
	package_import: Optional[str] = None
	gofmt: bool = False

	def emit_options(self) -> EmitOptions:
		return EmitOptions(
			module_path=self.module_path,
			prefix=self.prefix,
			package_import=self.package_import,
			error_channel=self.error_channel,
			gofmt=self.gofmt,
		)


@dataclass(frozen=True)
class CompileResult:
	unit: CompilationUnit
	written: List[Path] = field(default_factory=list)
	noop: bool = False

	def to_dict(self) -> dict[str, object]:
		return {
			"ok": True,
			"noop": self.noop,
			"functions": [f.name for f in self.unit.sorted().functions],
			"structs": [s.name for s in self.unit.sorted().structs],
			"written": [str(p) for p in self.written],
		}


def compile_package(opts: CompileOptions) -> CompileResult:
	"""
	Scan `opts.source_dir` and emit the shim and header.

	Validation and rendering finish before the first byte is written; a run
	that finds no marked function writes nothing and reports a no-op.
	"""
	unit = scan_package(opts.source_dir, marker=opts.marker)
	if unit.is_empty():
		logger.warning("no %s functions found in %s; nothing to generate", opts.marker, opts.source_dir)
		return CompileResult(unit=unit, noop=True)

	artifacts = build_artifacts(
		unit,
		opts.emit_options(),
		shim_path=opts.shim_path,
		header_path=opts.header_path,
	)
	written = write_artifacts(artifacts)
	logger.info("generated %d artifact(s): %d function(s), %d struct(s)", len(written), len(unit.functions), len(unit.structs))
	return CompileResult(unit=unit, written=written)


__all__ = ["CompileOptions", "CompileResult", "compile_package"]
