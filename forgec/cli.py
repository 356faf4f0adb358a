# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from forgec import __version__
from forgec.compiler import CompileOptions, CompileResult, compile_package
from forgec.config import (
	DEFAULT_HEADER,
	DEFAULT_PKG,
	DEFAULT_PREFIX,
	DEFAULT_SHIM,
	FileConfig,
	GoModule,
	default_package_import,
	detect_module,
	find_config,
	load_config,
)
from forgec.errchan import ErrorChannelMode
from forgec.errors import ConfigError, ForgeError
from forgec.scanner import DEFAULT_MARKER


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(
		prog="forgec",
		description="Generate a cgo export shim and C header from capi:export-marked Go declarations",
	)
	p.add_argument("--pkg", type=Path, default=None, help=f"Go package directory to scan (default: ./{DEFAULT_PKG})")
	p.add_argument("-o", "--out", type=Path, default=None, help=f"Output path for the cgo shim (default: ./{DEFAULT_SHIM})")
	p.add_argument("--hout", type=Path, default=None, help=f"Output path for the C header (default: ./{DEFAULT_HEADER})")
	p.add_argument("--mod", type=str, default=None, help="Go module path (default: read from the nearest go.mod)")
	p.add_argument("--cprefix", type=str, default=None, help=f"Prefix for exported C symbols (default: {DEFAULT_PREFIX})")
	p.add_argument("--marker", type=str, default=None, help=f"Doc comment marker selecting declarations (default: {DEFAULT_MARKER})")
	p.add_argument(
		"--import",
		dest="package_import",
		type=str,
		default=None,
		help="Import path of the scanned package (default: derived from the module and --pkg)",
	)
	p.add_argument(
		"--sentry",
		"--withsentry",
		dest="sentry",
		action="store_true",
		help="Generate the error channel as a separate sentrywrap package next to the shim",
	)
	p.add_argument("--gofmt", action="store_true", help="Run gofmt over generated Go files")
	p.add_argument("--config", type=Path, default=None, help="Path to forgec.json (default: ./forgec.json if present)")
	p.add_argument("--json", action="store_true", help="Emit machine-readable JSON report")
	p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
	p.add_argument("--version", action="version", version=f"forgec {__version__}")
	return p


def _configure_logging(verbose: bool) -> None:
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.WARNING,
		format="forgec: %(levelname)s: %(message)s",
		stream=sys.stderr,
	)


def _resolve_options(args: argparse.Namespace) -> CompileOptions:
	cfg_path = args.config or find_config(Path.cwd())
	cfg = load_config(cfg_path) if cfg_path is not None else FileConfig()

	source_dir = args.pkg or cfg.pkg or DEFAULT_PKG
	shim_path = args.out or cfg.out or DEFAULT_SHIM
	header_path = args.hout or cfg.header or DEFAULT_HEADER

	detected: Optional[GoModule] = detect_module(shim_path.parent)
	module_path = args.mod or cfg.module
	if module_path is None:
		if detected is None:
			raise ConfigError("module path not provided and go.mod not found; pass --mod or run within a module")
		module_path = detected.path

	package_import = args.package_import or cfg.package_import
	if package_import is None and detected is not None and detected.path == module_path:
		package_import = default_package_import(detected, source_dir)

	if args.sentry:
		error_channel = ErrorChannelMode.SENTRYWRAP
	else:
		error_channel = cfg.error_channel or ErrorChannelMode.INLINE

	return CompileOptions(
		source_dir=source_dir,
		shim_path=shim_path,
		header_path=header_path,
		module_path=module_path,
		prefix=args.cprefix if args.cprefix is not None else (cfg.prefix if cfg.prefix is not None else DEFAULT_PREFIX),
		marker=args.marker or cfg.marker or DEFAULT_MARKER,
		error_channel=error_channel,
		package_import=package_import,
		gofmt=bool(args.gofmt or cfg.gofmt),
	)


def _print_summary(opts: CompileOptions, result: CompileResult) -> None:
	if result.noop:
		print(f"No {opts.marker} functions found in {opts.source_dir}; nothing generated")
		return
	names = ", ".join(str(p) for p in result.written)
	print(f"Generated {names} (functions: {len(result.unit.functions)}, structs: {len(result.unit.structs)})")


def main(argv: list[str] | None = None) -> int:
	parser = _build_parser()
	args = parser.parse_args(argv)
	_configure_logging(bool(args.verbose))

	try:
		opts = _resolve_options(args)
		result = compile_package(opts)
	except ForgeError as err:
		if args.json:
			print(json.dumps({"ok": False, "error": err.to_dict()}, sort_keys=True, separators=(",", ":")))
		else:
			print(err.format_human(), file=sys.stderr)
		return 2

	if args.json:
		print(json.dumps(result.to_dict(), sort_keys=True, separators=(",", ":")))
	else:
		_print_summary(opts, result)
	return 0


if __name__ == "__main__":  # pragma: no cover
	raise SystemExit(main())
