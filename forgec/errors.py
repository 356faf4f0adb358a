# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(frozen=True)
class ForgeError(Exception):
	"""
	A structured, serializable error raised by the export compiler.

	`reason_code` is stable per subclass; the optional context fields are filled
	in by whichever layer knows them (file, declaration, struct field).
	"""

	reason_code: ClassVar[str] = "forgec"

	message: str
	path: str | None = None
	line: int | None = None
	decl: str | None = None
	field: str | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"path": self.path,
			"line": self.line,
			"decl": self.decl,
			"field": self.field,
		}

	def format_human(self) -> str:
		where = ""
		if self.path:
			where = self.path if self.line is None else f"{self.path}:{self.line}"
			where += ": "
		subject = ""
		if self.decl and self.field:
			subject = f"{self.decl}.{self.field}: "
		elif self.decl:
			subject = f"{self.decl}: "
		return f"[{self.reason_code}] {where}{subject}{self.message}"


class ScanIOError(ForgeError):
	"""Package path missing, not a directory, unreadable, or not valid Go."""

	reason_code = "scan-io"


@dataclass(frozen=True)
class InvalidSignatureError(ForgeError):
	"""A marked declaration has a shape outside the permitted forms."""

	reason_code: ClassVar[str] = "invalid-signature"

	constraint: str | None = None

	def to_dict(self) -> dict[str, Any]:
		out = super().to_dict()
		out["constraint"] = self.constraint
		return out


@dataclass(frozen=True)
class UnsupportedTypeError(ForgeError):
	"""A parameter, value or field type has no ABI mapping."""

	reason_code: ClassVar[str] = "unsupported-type"

	source_type: str | None = None

	def to_dict(self) -> dict[str, Any]:
		out = super().to_dict()
		out["source_type"] = self.source_type
		return out


class WriteError(ForgeError):
	"""Filesystem or formatting failure while emitting an artifact."""

	reason_code = "write"


class ConfigError(ForgeError):
	reason_code = "config"


__all__ = [
	"ForgeError",
	"ScanIOError",
	"InvalidSignatureError",
	"UnsupportedTypeError",
	"WriteError",
	"ConfigError",
]
