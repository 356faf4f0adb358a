# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
forgec configuration (v0).

An optional `forgec.json` holds the same settings as the command line:

	{"format": "forgec-config", "version": 0, "pkg": "./internal", "prefix": "PM_"}

Command-line flags override the file; the file overrides the defaults.
Relative paths in the file resolve against the file's directory.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from forgec.errchan import ErrorChannelMode
from forgec.errors import ConfigError
from forgec.scanner import DEFAULT_MARKER

CONFIG_FILENAME = "forgec.json"

DEFAULT_PKG = Path("internal")
DEFAULT_SHIM = Path("exports.go")
DEFAULT_HEADER = Path("forgec.h")
DEFAULT_PREFIX = "PM_"

_PATH_KEYS = ("pkg", "out", "header")
_STR_KEYS = ("module", "prefix", "marker", "import")
_ALLOWED = {"format", "version", "error_channel", "gofmt", *_PATH_KEYS, *_STR_KEYS}


@dataclass(frozen=True)
class FileConfig:
	"""Values read from a config file; `None` means "not set"."""

	path: Optional[Path] = None
	pkg: Optional[Path] = None
	out: Optional[Path] = None
	header: Optional[Path] = None
	module: Optional[str] = None
	prefix: Optional[str] = None
	marker: Optional[str] = None
	error_channel: Optional[ErrorChannelMode] = None
	package_import: Optional[str] = None
	gofmt: Optional[bool] = None


def load_config(path: Path) -> FileConfig:
	try:
		data = json.loads(path.read_text(encoding="utf-8"))
	except OSError as err:
		raise ConfigError(f"cannot read config: {err.strerror or err}", path=str(path)) from err
	except json.JSONDecodeError as err:
		raise ConfigError(f"config is not valid JSON: {err.msg}", path=str(path), line=err.lineno) from err
	if not isinstance(data, dict):
		raise ConfigError("config must be a JSON object", path=str(path))
	if data.get("format") != "forgec-config" or data.get("version") != 0:
		raise ConfigError("unsupported config format/version (expected forgec-config v0)", path=str(path))
	unknown = sorted(set(data.keys()) - _ALLOWED)
	if unknown:
		raise ConfigError(f"config has unknown fields: {', '.join(unknown)}", path=str(path))

	base = path.parent
	values: dict[str, Any] = {}
	for key in _PATH_KEYS:
		if key in data:
			values[key] = base / _expect(data, key, str, path)
	for key in _STR_KEYS:
		if key in data:
			values["package_import" if key == "import" else key] = _expect(data, key, str, path)
	if "gofmt" in data:
		values["gofmt"] = _expect(data, "gofmt", bool, path)
	if "error_channel" in data:
		raw = _expect(data, "error_channel", str, path)
		try:
			values["error_channel"] = ErrorChannelMode(raw)
		except ValueError as err:
			choices = ", ".join(m.value for m in ErrorChannelMode)
			raise ConfigError(f"config field 'error_channel' must be one of: {choices}", path=str(path)) from err
	return FileConfig(path=path, **values)


def _expect(data: dict[str, Any], key: str, ty: type, path: Path) -> Any:
	value = data[key]
	if not isinstance(value, ty):
		raise ConfigError(f"config field '{key}' must be a {ty.__name__}", path=str(path))
	if ty is str and not value:
		raise ConfigError(f"config field '{key}' must be non-empty", path=str(path))
	return value


def find_config(start_dir: Path) -> Optional[Path]:
	candidate = start_dir / CONFIG_FILENAME
	return candidate if candidate.is_file() else None


# --- Go module detection ---


@dataclass(frozen=True)
class GoModule:
	path: str
	root: Path


def _read_module_line(go_mod: Path) -> Optional[str]:
	for raw in go_mod.read_text(encoding="utf-8").splitlines():
		line = raw.split("//", 1)[0].strip()
		parts = line.split(None, 1)
		if len(parts) == 2 and parts[0] == "module":
			return parts[1].strip().strip('"`')
	return None


def detect_module(start_dir: Path) -> Optional[GoModule]:
	"""Nearest `go.mod` at or above `start_dir`, or `None`."""
	current = Path(os.path.abspath(start_dir))
	for directory in (current, *current.parents):
		go_mod = directory / "go.mod"
		if go_mod.is_file():
			try:
				name = _read_module_line(go_mod)
			except (OSError, UnicodeDecodeError) as err:
				raise ConfigError(f"cannot read go.mod: {err}", path=str(go_mod)) from err
			if name is None:
				raise ConfigError("go.mod has no module directive", path=str(go_mod))
			return GoModule(path=name, root=directory)
	return None


def default_package_import(module: GoModule, source_dir: Path) -> str:
	"""Import path of `source_dir` inside `module`; `<module>/internal` outside it."""
	pkg = Path(os.path.abspath(source_dir))
	try:
		rel = pkg.relative_to(module.root)
	except ValueError:
		return f"{module.path}/internal"
	if not rel.parts:
		return module.path
	return f"{module.path}/{rel.as_posix()}"


__all__ = [
	"CONFIG_FILENAME",
	"DEFAULT_PKG",
	"DEFAULT_SHIM",
	"DEFAULT_HEADER",
	"DEFAULT_PREFIX",
	"DEFAULT_MARKER",
	"FileConfig",
	"load_config",
	"find_config",
	"GoModule",
	"detect_module",
	"default_package_import",
]
