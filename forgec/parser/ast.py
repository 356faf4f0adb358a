# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration-level Go AST.

Only what the export compiler inspects is modeled: package clause, imports,
function signatures, type specs and their doc comments. Bodies are dropped by
the parser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Located:
	line: int
	column: int
	file: Optional[str] = None

	def __str__(self) -> str:
		if self.file:
			return f"{self.file}:{self.line}:{self.column}"
		return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class Comment:
	text: str
	line: int
	end_line: int

	def body_lines(self) -> list[str]:
		"""Comment text without `//`, `/*`, `*/` delimiters, one entry per line."""
		raw = self.text
		if raw.startswith("//"):
			return [raw[2:].strip()]
		inner = raw[2:-2]
		out = []
		for ln in inner.splitlines():
			ln = ln.strip()
			if ln.startswith("*"):
				ln = ln[1:].strip()
			out.append(ln)
		return out


@dataclass(frozen=True)
class CommentGroup:
	comments: Tuple[Comment, ...]

	@property
	def line(self) -> int:
		return self.comments[0].line

	@property
	def end_line(self) -> int:
		return self.comments[-1].end_line

	def lines(self) -> list[str]:
		out: list[str] = []
		for c in self.comments:
			out.extend(c.body_lines())
		return out

	def has_directive(self, marker: str) -> bool:
		"""True when any comment line starts with `marker` as a whole word."""
		return any(ln == marker or (ln.startswith(marker) and ln[len(marker)].isspace()) for ln in self.lines())


# --- types ---


@dataclass(frozen=True)
class NamedType:
	name: str
	qualifier: Optional[str] = None
	args: Tuple["TypeExpr", ...] = ()

	def __str__(self) -> str:
		base = f"{self.qualifier}.{self.name}" if self.qualifier else self.name
		if self.args:
			return f"{base}[{', '.join(str(a) for a in self.args)}]"
		return base


@dataclass(frozen=True)
class PointerType:
	elem: "TypeExpr"

	def __str__(self) -> str:
		return f"*{self.elem}"


@dataclass(frozen=True)
class SliceType:
	elem: "TypeExpr"

	def __str__(self) -> str:
		return f"[]{self.elem}"


@dataclass(frozen=True)
class ArrayType:
	length: str
	elem: "TypeExpr"

	def __str__(self) -> str:
		return f"[{self.length}]{self.elem}"


@dataclass(frozen=True)
class MapType:
	key: "TypeExpr"
	value: "TypeExpr"

	def __str__(self) -> str:
		return f"map[{self.key}]{self.value}"


@dataclass(frozen=True)
class ChanType:
	elem: "TypeExpr"
	direction: str = "both"  # "both" | "send" | "recv"

	def __str__(self) -> str:
		if self.direction == "send":
			return f"chan<- {self.elem}"
		if self.direction == "recv":
			return f"<-chan {self.elem}"
		return f"chan {self.elem}"


@dataclass(frozen=True)
class FuncType:
	params: Tuple["Param", ...]
	results: Tuple["Param", ...]

	def __str__(self) -> str:
		params = ", ".join(str(p) for p in self.params)
		if not self.results:
			return f"func({params})"
		if len(self.results) == 1 and self.results[0].name is None:
			return f"func({params}) {self.results[0]}"
		return f"func({params}) ({', '.join(str(r) for r in self.results)})"


@dataclass(frozen=True)
class StructType:
	fields: Tuple["Field", ...]

	def __str__(self) -> str:
		return "struct{...}" if self.fields else "struct{}"


@dataclass(frozen=True)
class InterfaceType:
	def __str__(self) -> str:
		return "interface{...}"


TypeExpr = Union[NamedType, PointerType, SliceType, ArrayType, MapType, ChanType, FuncType, StructType, InterfaceType]


# --- declarations ---


@dataclass(frozen=True)
class Param:
	name: Optional[str]
	type: TypeExpr
	variadic: bool = False

	def __str__(self) -> str:
		ty = f"...{self.type}" if self.variadic else str(self.type)
		return f"{self.name} {ty}" if self.name else ty


@dataclass(frozen=True)
class Field:
	names: Tuple[str, ...]
	type: TypeExpr
	loc: Located
	tag: Optional[str] = None
	embedded: bool = False


@dataclass(frozen=True)
class ImportSpec:
	path: str
	loc: Located
	alias: Optional[str] = None

	@property
	def local_name(self) -> str:
		"""Name the package is referred to by inside the file."""
		if self.alias:
			return self.alias
		parts = PurePosixPath(self.path).parts
		last = parts[-1] if parts else self.path
		# `example.com/mod/v2` is imported as `mod`.
		if len(parts) > 1 and last[:1] == "v" and last[1:].isdigit():
			last = parts[-2]
		return last


@dataclass(frozen=True)
class FuncDecl:
	name: str
	params: Tuple[Param, ...]
	results: Tuple[Param, ...]
	loc: Located
	receiver: Optional[Tuple[Param, ...]] = None
	type_params: Tuple[str, ...] = ()
	doc: Optional[CommentGroup] = None
	has_body: bool = True


@dataclass(frozen=True)
class TypeSpec:
	name: str
	type: TypeExpr
	loc: Located
	type_params: Tuple[str, ...] = ()
	is_alias: bool = False
	doc: Optional[CommentGroup] = None


@dataclass(frozen=True)
class TypeDecl:
	specs: Tuple[TypeSpec, ...]
	loc: Located
	doc: Optional[CommentGroup] = None


@dataclass(frozen=True)
class ValueDecl:
	keyword: str  # "var" | "const"
	loc: Located
	doc: Optional[CommentGroup] = None


Decl = Union[FuncDecl, TypeDecl, ValueDecl]


@dataclass
class GoFile:
	package: str
	imports: list[ImportSpec] = field(default_factory=list)
	decls: list[Decl] = field(default_factory=list)
	comments: list[Comment] = field(default_factory=list)
	path: Optional[str] = None

	def import_table(self) -> dict[str, str]:
		"""Map of local package name -> import path."""
		return {spec.local_name: spec.path for spec in self.imports if spec.local_name not in ("_", ".")}


__all__ = [
	"Located",
	"Comment",
	"CommentGroup",
	"NamedType",
	"PointerType",
	"SliceType",
	"ArrayType",
	"MapType",
	"ChanType",
	"FuncType",
	"StructType",
	"InterfaceType",
	"TypeExpr",
	"Param",
	"Field",
	"ImportSpec",
	"FuncDecl",
	"TypeSpec",
	"TypeDecl",
	"ValueDecl",
	"Decl",
	"GoFile",
]
