# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import codecs
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from .ast import (
	ArrayType,
	ChanType,
	Comment,
	CommentGroup,
	Decl,
	Field,
	FuncDecl,
	FuncType,
	GoFile,
	ImportSpec,
	InterfaceType,
	Located,
	MapType,
	NamedType,
	Param,
	PointerType,
	SliceType,
	StructType,
	TypeDecl,
	TypeExpr,
	TypeSpec,
	ValueDecl,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()


class TerminatorInserter:
	"""
	Go automatic semicolon insertion.

	A newline becomes a terminator when the last token on the line is an
	identifier (keywords such as `return` lex as NAME), a literal, `++`/`--`,
	or a closing bracket. End of input behaves like a final newline.
	"""

	always_accept = ("NEWLINE", "SEMI")

	TERMINABLE = {
		"NAME",
		"NUMBER",
		"STRING",
		"RUNE",
		"RPAR",
		"RSQB",
		"RBRACE",
	}

	TERMINABLE_OPS = {"++", "--"}

	def __init__(self) -> None:
		self._reset()

	def _reset(self) -> None:
		self.can_terminate = False
		self.last: Optional[Token] = None

	def process(self, stream: Iterable[Token]) -> Iterator[Token]:
		self._reset()
		for token in stream:
			ttype = token.type
			if ttype == "NEWLINE":
				if self.can_terminate:
					yield Token.new_borrow_pos("_TERM", ";", token)
					self.can_terminate = False
				continue
			if ttype == "SEMI":
				yield Token.new_borrow_pos("_TERM", token.value, token)
				self.can_terminate = False
				continue
			yield token
			self.last = token
			self.can_terminate = self._is_terminable(token)
		if self.can_terminate and self.last is not None:
			yield Token.new_borrow_pos("_TERM", ";", self.last)
			self.can_terminate = False

	def _is_terminable(self, token: Token) -> bool:
		if token.type == "OP":
			return token.value in self.TERMINABLE_OPS
		return token.type in self.TERMINABLE


_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	start="start",
	propagate_positions=True,
	maybe_placeholders=False,
	postlex=TerminatorInserter(),
)


class GoSyntaxError(ValueError):
	"""
	Source that the declaration grammar cannot accept.

	Carries a best-effort location so callers can report `file:line:col`.
	"""

	def __init__(self, message: str, *, loc: Located) -> None:
		super().__init__(message)
		self.loc = loc


def parse_source(source: str, *, filename: Optional[str] = None) -> GoFile:
	try:
		tree = _PARSER.parse(source)
	except UnexpectedInput as err:
		raise GoSyntaxError(_describe_unexpected(err), loc=_error_loc(err, filename)) from err
	comments = _collect_comments(source)
	return _FileBuilder(filename, comments).build(tree)


def parse_go_file(path: Path) -> GoFile:
	return parse_source(path.read_text(encoding="utf-8"), filename=str(path))


def _describe_unexpected(err: UnexpectedInput) -> str:
	if isinstance(err, UnexpectedToken):
		tok = err.token
		if tok.type == "_TERM":
			return "unexpected newline or ';'"
		if tok.type == "$END":
			return "unexpected end of file"
		return f"unexpected {tok.value!r}"
	if isinstance(err, UnexpectedCharacters):
		return f"unexpected character {err.char!r}"
	if isinstance(err, UnexpectedEOF):
		return "unexpected end of file"
	return "syntax error"


def _error_loc(err: UnexpectedInput, filename: Optional[str]) -> Located:
	line = getattr(err, "line", None)
	column = getattr(err, "column", None)
	if not isinstance(line, int) or line < 1:
		line = 0
	if not isinstance(column, int) or column < 1:
		column = 0
	return Located(line=line, column=column, file=filename)


def _collect_comments(source: str) -> List[Comment]:
	out: List[Comment] = []
	for tok in _PARSER.lex(source, dont_ignore=True):
		if tok.type == "COMMENT":
			end_line = tok.end_line if tok.end_line is not None else tok.line
			out.append(Comment(text=tok.value, line=tok.line, end_line=end_line))
	return out


def _group_comments(comments: List[Comment]) -> List[CommentGroup]:
	"""Adjacent comments (no blank line between them) form one group."""
	groups: List[CommentGroup] = []
	current: List[Comment] = []
	for c in comments:
		if current and c.line > current[-1].end_line + 1:
			groups.append(CommentGroup(tuple(current)))
			current = []
		current.append(c)
	if current:
		groups.append(CommentGroup(tuple(current)))
	return groups


def _decode_string_token(tok: Token) -> str:
	"""
	Decode an interpreted ("...") or raw (`...`) Go string literal.

	Escapes are interpreted Python-style (unicode_escape), then the code points
	are reinterpreted as raw bytes and decoded as UTF-8, so `\\xHH` byte
	escapes round-trip.
	"""
	raw = tok.value
	content = raw[1:-1]
	if raw.startswith("`"):
		return content
	unescaped = codecs.decode(content, "unicode_escape")
	return unescaped.encode("latin-1").decode("utf-8")


def _name(tree: Tree) -> str:
	return tree.data if isinstance(tree.data, str) else tree.data.value


def _trees(tree: Tree) -> List[Tree]:
	return [c for c in tree.children if isinstance(c, Tree)]


def _tokens(tree: Tree, ttype: str) -> List[Token]:
	return [c for c in tree.children if isinstance(c, Token) and c.type == ttype]


def _token(tree: Tree, ttype: str) -> Optional[Token]:
	return next((c for c in tree.children if isinstance(c, Token) and c.type == ttype), None)


def _sub(tree: Tree, name: str) -> Optional[Tree]:
	return next((c for c in tree.children if isinstance(c, Tree) and _name(c) == name), None)


class _FileBuilder:
	def __init__(self, filename: Optional[str], comments: List[Comment]) -> None:
		self.filename = filename
		self.comments = comments
		self._docs = {g.end_line: g for g in _group_comments(comments)}

	def build(self, tree: Tree) -> GoFile:
		package = ""
		imports: List[ImportSpec] = []
		decls: List[Decl] = []
		for child in tree.children:
			if not isinstance(child, Tree):
				continue
			kind = _name(child)
			if kind == "package_clause":
				package = _tokens(child, "NAME")[0].value
			elif kind == "import_decl":
				imports.extend(self._import_spec(spec) for spec in _trees(child))
			elif kind == "func_decl":
				decls.append(self._func_decl(child))
			elif kind == "type_decl":
				decls.append(self._type_decl(child))
			elif kind == "value_decl":
				decls.append(self._value_decl(child))
		return GoFile(
			package=package,
			imports=imports,
			decls=decls,
			comments=list(self.comments),
			path=self.filename,
		)

	# --- helpers ---

	def _loc(self, tok: Token) -> Located:
		return Located(line=tok.line, column=tok.column, file=self.filename)

	def _tree_loc(self, tree: Tree) -> Located:
		meta = tree.meta
		return Located(
			line=getattr(meta, "line", 0),
			column=getattr(meta, "column", 0),
			file=self.filename,
		)

	def _doc_before(self, line: int) -> Optional[CommentGroup]:
		return self._docs.get(line - 1)

	def _syntax_error(self, message: str, tree: Tree) -> GoSyntaxError:
		return GoSyntaxError(message, loc=self._tree_loc(tree))

	# --- declarations ---

	def _import_spec(self, tree: Tree) -> ImportSpec:
		path_tok = _tokens(tree, "STRING")[0]
		alias_tok = _token(tree, "NAME") or _token(tree, "DOT")
		return ImportSpec(
			path=_decode_string_token(path_tok),
			loc=self._loc(path_tok),
			alias=alias_tok.value if alias_tok is not None else None,
		)

	def _func_decl(self, tree: Tree) -> FuncDecl:
		func_tok = _tokens(tree, "FUNC")[0]
		name_tok = _tokens(tree, "NAME")[0]
		receiver_node = _sub(tree, "receiver")
		receiver = None
		if receiver_node is not None:
			receiver = self._parameters(_trees(receiver_node)[0])
		tparams_node = _sub(tree, "type_params")
		type_params = self._type_params(tparams_node) if tparams_node is not None else ()
		signature = _sub(tree, "signature")
		assert signature is not None
		params, results = self._signature(signature)
		return FuncDecl(
			name=name_tok.value,
			params=params,
			results=results,
			loc=self._loc(name_tok),
			receiver=receiver,
			type_params=type_params,
			doc=self._doc_before(func_tok.line),
			has_body=_sub(tree, "body") is not None,
		)

	def _type_decl(self, tree: Tree) -> TypeDecl:
		type_tok = _tokens(tree, "TYPE")[0]
		decl_doc = self._doc_before(type_tok.line)
		specs = []
		for spec in _trees(tree):
			name_tok = _tokens(spec, "NAME")[0]
			# A single-spec decl shares its line with the `type` keyword;
			# specs inside `type ( ... )` carry their own doc comments.
			spec_doc = self._doc_before(name_tok.line) if name_tok.line != type_tok.line else None
			tparams_node = _sub(spec, "type_params")
			type_node = [t for t in _trees(spec) if _name(t) != "type_params"][-1]
			specs.append(
				TypeSpec(
					name=name_tok.value,
					type=self._type(type_node),
					loc=self._loc(name_tok),
					type_params=self._type_params(tparams_node) if tparams_node is not None else (),
					is_alias=_token(spec, "EQUAL") is not None,
					doc=spec_doc,
				)
			)
		return TypeDecl(specs=tuple(specs), loc=self._loc(type_tok), doc=decl_doc)

	def _value_decl(self, tree: Tree) -> ValueDecl:
		kw = next(c for c in tree.children if isinstance(c, Token) and c.type in ("VAR", "CONST"))
		return ValueDecl(keyword=kw.value, loc=self._loc(kw), doc=self._doc_before(kw.line))

	def _type_params(self, tree: Tree) -> tuple[str, ...]:
		names: List[str] = []
		for decl in _trees(tree):
			names.extend(tok.value for tok in _tokens(decl, "NAME"))
		return tuple(names)

	# --- signatures ---

	def _signature(self, tree: Tree) -> tuple[tuple[Param, ...], tuple[Param, ...]]:
		params = self._parameters(_sub(tree, "parameters"))
		result = _sub(tree, "result")
		if result is None:
			return params, ()
		inner = _trees(result)[0]
		if _name(inner) == "parameters":
			return params, self._parameters(inner)
		return params, (Param(name=None, type=self._type(inner)),)

	def _parameters(self, tree: Tree) -> tuple[Param, ...]:
		"""
		Resolve Go parameter grouping.

		The grammar cannot tell `(a, b int32)` from `(T1, T2)`; when any entry is
		named, every bare entry before it is a name sharing the next type.
		"""
		entries = _trees(tree)
		named = any(_name(e) in ("param_named", "param_named_variadic") for e in entries)
		if not named:
			return tuple(
				Param(name=None, type=self._type(_trees(e)[0]), variadic=_name(e) == "param_variadic")
				for e in entries
			)
		out: List[Param] = []
		pending: List[str] = []
		for e in entries:
			kind = _name(e)
			if kind == "param_type_only":
				pending.append(self._bare_name(_trees(e)[0], e))
				continue
			if kind == "param_variadic":
				raise self._syntax_error("mixed named and unnamed parameters", e)
			ty = self._type(_trees(e)[0])
			for pname in pending:
				out.append(Param(name=pname, type=ty))
			pending = []
			out.append(Param(name=_tokens(e, "NAME")[0].value, type=ty, variadic=kind == "param_named_variadic"))
		if pending:
			raise self._syntax_error("mixed named and unnamed parameters", tree)
		return tuple(out)

	def _bare_name(self, type_node: Tree, entry: Tree) -> str:
		if _name(type_node) == "type_name":
			toks = _tokens(type_node, "NAME")
			if len(toks) == 1:
				return toks[0].value
		raise self._syntax_error("mixed named and unnamed parameters", entry)

	# --- types ---

	def _type(self, tree: Tree) -> TypeExpr:
		kind = _name(tree)
		if kind == "type_name":
			names = [t.value for t in _tokens(tree, "NAME")]
			if len(names) == 2:
				return NamedType(name=names[1], qualifier=names[0])
			return NamedType(name=names[0])
		if kind == "generic_type":
			base_node, args_node = _trees(tree)
			base = self._type(base_node)
			assert isinstance(base, NamedType)
			args = tuple(self._type(t) for t in _trees(args_node))
			return NamedType(name=base.name, qualifier=base.qualifier, args=args)
		if kind == "pointer_type":
			return PointerType(self._type(_trees(tree)[0]))
		if kind == "slice_type":
			return SliceType(self._type(_trees(tree)[0]))
		if kind == "array_type":
			len_node, elem_node = _trees(tree)
			length = next(c for c in len_node.children if isinstance(c, Token)).value
			return ArrayType(length=length, elem=self._type(elem_node))
		if kind == "map_type":
			key_node, value_node = _trees(tree)
			return MapType(key=self._type(key_node), value=self._type(value_node))
		if kind == "chan_type":
			return ChanType(self._type(_trees(tree)[0]))
		if kind == "send_chan_type":
			return ChanType(self._type(_trees(tree)[0]), direction="send")
		if kind == "recv_chan_type":
			return ChanType(self._type(_trees(tree)[0]), direction="recv")
		if kind == "func_type":
			params, results = self._signature(_trees(tree)[0])
			return FuncType(params=params, results=results)
		if kind == "struct_type":
			return StructType(tuple(self._field(f) for f in _trees(tree)))
		if kind == "interface_type":
			return InterfaceType()
		raise AssertionError(f"unhandled type node: {kind}")

	def _field(self, tree: Tree) -> Field:
		kind = _name(tree)
		tag_node = _sub(tree, "tag")
		tag = _decode_string_token(_tokens(tag_node, "STRING")[0]) if tag_node is not None else None
		loc = self._tree_loc(tree)
		if kind == "named_field":
			type_node = next(t for t in _trees(tree) if _name(t) != "tag")
			names = tuple(tok.value for tok in _tokens(tree, "NAME"))
			return Field(names=names, type=self._type(type_node), loc=loc, tag=tag)
		embedded = _sub(tree, "embedded")
		assert embedded is not None
		named = self._type(_trees(embedded)[0])
		assert isinstance(named, NamedType)
		ty: TypeExpr = PointerType(named) if _token(embedded, "STAR") is not None else named
		return Field(names=(named.name,), type=ty, loc=loc, tag=tag, embedded=True)


__all__ = ["GoSyntaxError", "TerminatorInserter", "parse_go_file", "parse_source"]
