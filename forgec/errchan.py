# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Runtime error channel.

Every generated wrapper reports through one process-wide channel: a
mutex-protected slot holding the last failure as `{"error":"<message>"}`, or
`{}` when the last call succeeded. Panics raised by wrapped code are recovered
in exactly one place (`guard`) and turned into ordinary failures, so nothing
abnormal ever unwinds into the C caller.

This module renders that runtime as Go source in two placements and also
provides `ErrorChannel`, a Python model of the same contract that the tests
use to pin its behavior.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from enum import Enum
from string import Template
from typing import Any, Callable, Optional, Union


class ErrorChannelMode(Enum):
	INLINE = "inline"
	SENTRYWRAP = "sentrywrap"


SENTRYWRAP_PACKAGE = "sentrywrap"

# Message used when a panic payload carries no usable text.
PANIC_MESSAGE = "panic"


@dataclass(frozen=True)
class _Spelling:
	channel: str
	new: str
	record: str
	last_json: str
	guard: str
	invoke: str
	panic_error: str
	from_panic: str


_INLINE = _Spelling(
	channel="errorChannel",
	new="newErrorChannel",
	record="record",
	last_json="lastJSON",
	guard="guard",
	invoke="invoke",
	panic_error="panicError",
	from_panic="errorFromPanic",
)

_EXPORTED = _Spelling(
	channel="ErrorChannel",
	new="NewErrorChannel",
	record="Record",
	last_json="LastJSON",
	guard="Guard",
	invoke="Invoke",
	panic_error="panicError",
	from_panic="errorFromPanic",
)

_CHANNEL_TEMPLATE = Template(
	"""\
// $channel holds the most recent failure as a JSON document.
type $channel struct {
	mu   sync.Mutex
	last string
}

func $new() *$channel {
	return &$channel{}
}

// $record clears the slot when err is nil and overwrites it otherwise.
func (c *$channel) $record(err error) {
	c.mu.Lock()
	defer c.mu.Unlock()
	if err == nil {
		c.last = ""
		return
	}
	b, merr := json.Marshal(map[string]string{"error": err.Error()})
	if merr != nil {
		b = []byte(`{"error":"$panic_message"}`)
	}
	c.last = string(b)
}

func (c *$channel) $last_json() string {
	c.mu.Lock()
	defer c.mu.Unlock()
	if c.last == "" {
		return "{}"
	}
	return c.last
}

type $panic_error string

func (e $panic_error) Error() string { return string(e) }

func $from_panic(r any) error {
	switch x := r.(type) {
	case error:
		return x
	case string:
		return $panic_error(x)
	default:
		return $panic_error("$panic_message")
	}
}

// $guard runs fn and converts a panic into an ordinary error.
// Completion is tracked explicitly: the recovered value of panic(nil) is
// nil under GODEBUG=panicnil=1 and in modules declaring go < 1.21.
func $guard(fn func() error) (err error) {
	done := false
	defer func() {
		if !done {
			err = $from_panic(recover())
		}
	}()
	err = fn()
	done = true
	return err
}

// $invoke runs fn under $guard, records the outcome and returns 0 or 1.
func (c *$channel) $invoke(fn func() error) int32 {
	err := $guard(fn)
	c.$record(err)
	if err != nil {
		return 1
	}
	return 0
}
"""
)


def _render_channel(spelling: _Spelling) -> str:
	return _CHANNEL_TEMPLATE.substitute(
		channel=spelling.channel,
		new=spelling.new,
		record=spelling.record,
		last_json=spelling.last_json,
		guard=spelling.guard,
		invoke=spelling.invoke,
		panic_error=spelling.panic_error,
		from_panic=spelling.from_panic,
		panic_message=PANIC_MESSAGE,
	)


def channel_imports(mode: ErrorChannelMode) -> list[str]:
	"""Standard-library imports the shim needs for the channel in `mode`."""
	if mode is ErrorChannelMode.INLINE:
		return ["encoding/json", "sync"]
	return []


def render_inline_channel() -> str:
	"""Channel type, helpers and the package-level instance, for `exports.go`."""
	return _render_channel(_INLINE) + "\nvar capiErrors = newErrorChannel()\n"


def render_sentrywrap_package() -> str:
	return (
		"// Code generated by forgec. DO NOT EDIT.\n\n"
		f"package {SENTRYWRAP_PACKAGE}\n\n"
		"import (\n"
		'\t"encoding/json"\n'
		'\t"sync"\n'
		")\n\n"
		+ _render_channel(_EXPORTED)
		+ "\n// Default is the channel every generated wrapper reports through.\n"
		"var Default = NewErrorChannel()\n\n"
		"func SetLastError(err error) { Default.Record(err) }\n\n"
		"func LastErrorJSON() string { return Default.LastJSON() }\n"
	)


def invoke_expr(mode: ErrorChannelMode) -> str:
	"""Go expression the wrappers call to run their body."""
	if mode is ErrorChannelMode.INLINE:
		return "capiErrors.invoke"
	return f"{SENTRYWRAP_PACKAGE}.Default.Invoke"


def last_error_expr(mode: ErrorChannelMode) -> str:
	if mode is ErrorChannelMode.INLINE:
		return "capiErrors.lastJSON()"
	return f"{SENTRYWRAP_PACKAGE}.LastErrorJSON()"


# --- Python model ---


class Panic(Exception):
	"""Abnormal termination carrying an arbitrary payload, like Go's `panic(v)`."""

	def __init__(self, payload: Any) -> None:
		super().__init__(payload)
		self.payload = payload


@dataclass(frozen=True)
class Ok:
	value: Any = None


@dataclass(frozen=True)
class Failed:
	message: str


Outcome = Union[Ok, Failed]


def describe_abnormal(payload: Any) -> str:
	"""Message for a recovered payload: errors keep theirs, text is verbatim."""
	if isinstance(payload, BaseException):
		return str(payload)
	if isinstance(payload, str):
		return payload
	return PANIC_MESSAGE


def guarded_call(fn: Callable[..., Any], *args: Any) -> Outcome:
	try:
		return Ok(fn(*args))
	except Panic as abnormal:
		return Failed(describe_abnormal(abnormal.payload))
	except Exception as err:
		return Failed(str(err))


def _go_json(obj: dict[str, str]) -> str:
	# encoding/json output: compact, UTF-8, HTML-significant runes escaped.
	out = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
	for ch, esc in (("<", "\\u003c"), (">", "\\u003e"), ("&", "\\u0026"), ("\u2028", "\\u2028"), ("\u2029", "\\u2029")):
		out = out.replace(ch, esc)
	return out


class ErrorChannel:
	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._last = ""

	def record(self, message: Optional[str]) -> None:
		with self._lock:
			self._last = "" if message is None else _go_json({"error": message})

	def last_error_json(self) -> str:
		with self._lock:
			return self._last or "{}"

	def invoke(self, fn: Callable[..., Any], *args: Any) -> int:
		outcome = guarded_call(fn, *args)
		if isinstance(outcome, Failed):
			self.record(outcome.message)
			return 1
		self.record(None)
		return 0


__all__ = [
	"ErrorChannelMode",
	"SENTRYWRAP_PACKAGE",
	"PANIC_MESSAGE",
	"channel_imports",
	"render_inline_channel",
	"render_sentrywrap_package",
	"invoke_expr",
	"last_error_expr",
	"Panic",
	"Ok",
	"Failed",
	"Outcome",
	"describe_abnormal",
	"guarded_call",
	"ErrorChannel",
]
