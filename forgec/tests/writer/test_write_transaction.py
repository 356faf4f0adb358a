from __future__ import annotations

import os
from pathlib import Path

import pytest

from forgec.errchan import ErrorChannelMode
from forgec.errors import WriteError
from forgec.ir import CompilationUnit, ErrorOnly, ExportedFunction
from forgec.writer import Artifact, EmitOptions, build_artifacts, write_artifacts

UNIT = CompilationUnit((ExportedFunction("Reset", (), ErrorOnly()),))


def test_build_artifacts_inline(tmp_path: Path) -> None:
	arts = build_artifacts(
		UNIT,
		EmitOptions(module_path="example.com/m"),
		shim_path=tmp_path / "exports.go",
		header_path=tmp_path / "include" / "forgec.h",
	)
	assert [a.path for a in arts] == [tmp_path / "exports.go", tmp_path / "include" / "forgec.h"]
	assert not (tmp_path / "exports.go").exists()


def test_build_artifacts_sentrywrap_adds_package(tmp_path: Path) -> None:
	arts = build_artifacts(
		UNIT,
		EmitOptions(module_path="example.com/m", error_channel=ErrorChannelMode.SENTRYWRAP),
		shim_path=tmp_path / "exports.go",
		header_path=tmp_path / "forgec.h",
	)
	sentry = arts[-1]
	assert sentry.path == tmp_path / "sentrywrap" / "sentrywrap.go"
	assert "package sentrywrap" in sentry.content
	assert "var Default = NewErrorChannel()" in sentry.content
	assert "func SetLastError(err error)" in sentry.content
	assert "func LastErrorJSON() string" in sentry.content
	assert sentry.content.count("recover()") == 1


def test_gofmt_missing_fails_before_writing(tmp_path: Path, monkeypatch) -> None:
	monkeypatch.setattr("forgec.writer.shutil.which", lambda name: None)
	with pytest.raises(WriteError) as excinfo:
		build_artifacts(
			UNIT,
			EmitOptions(module_path="example.com/m", gofmt=True),
			shim_path=tmp_path / "exports.go",
			header_path=tmp_path / "forgec.h",
		)
	assert excinfo.value.path == str(tmp_path / "exports.go")
	assert list(tmp_path.iterdir()) == []


def test_write_creates_parents_and_replaces(tmp_path: Path) -> None:
	old = tmp_path / "out" / "forgec.h"
	old.parent.mkdir()
	old.write_text("stale")
	written = write_artifacts(
		[
			Artifact(tmp_path / "out" / "exports.go", "package main\n"),
			Artifact(old, "#pragma once\n"),
			Artifact(tmp_path / "out" / "sentrywrap" / "sentrywrap.go", "package sentrywrap\n"),
		]
	)
	assert written == [tmp_path / "out" / "exports.go", old, tmp_path / "out" / "sentrywrap" / "sentrywrap.go"]
	assert old.read_text() == "#pragma once\n"
	assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["exports.go", "forgec.h", "sentrywrap"]


def test_staging_failure_leaves_existing_outputs(tmp_path: Path) -> None:
	existing = tmp_path / "exports.go"
	existing.write_text("old shim")
	blocker = tmp_path / "blocked"
	blocker.write_text("a file, not a directory")
	with pytest.raises(WriteError) as excinfo:
		write_artifacts(
			[
				Artifact(existing, "new shim"),
				Artifact(blocker / "forgec.h", "header"),
			]
		)
	assert excinfo.value.path == str(blocker / "forgec.h")
	assert existing.read_text() == "old shim"
	assert sorted(p.name for p in tmp_path.iterdir()) == ["blocked", "exports.go"]


def test_staging_files_are_named_after_pid(tmp_path: Path, monkeypatch) -> None:
	seen: list[str] = []
	real_replace = os.replace

	def spy(src, dst):
		seen.append(Path(src).name)
		real_replace(src, dst)

	monkeypatch.setattr("forgec.writer.os.replace", spy)
	write_artifacts([Artifact(tmp_path / "forgec.h", "x")])
	assert seen == [f"forgec.h.tmp.{os.getpid()}"]


def test_failed_replace_rolls_back_swapped_outputs(tmp_path: Path, monkeypatch) -> None:
	shim = tmp_path / "exports.go"
	header = tmp_path / "forgec.h"
	shim.write_text("old shim")
	header.write_text("old header")
	real_replace = os.replace

	def flaky(src, dst):
		if Path(src).name.startswith("forgec.h.tmp."):
			raise PermissionError(13, "Permission denied")
		real_replace(src, dst)

	monkeypatch.setattr("forgec.writer.os.replace", flaky)
	with pytest.raises(WriteError) as excinfo:
		write_artifacts([Artifact(shim, "new shim"), Artifact(header, "new header")])
	assert excinfo.value.path == str(header)
	assert shim.read_text() == "old shim"
	assert header.read_text() == "old header"
	assert sorted(p.name for p in tmp_path.iterdir()) == ["exports.go", "forgec.h"]


def test_new_outputs_are_removed_when_a_later_replace_fails(tmp_path: Path, monkeypatch) -> None:
	real_replace = os.replace

	def flaky(src, dst):
		if Path(dst).name == "forgec.h":
			raise PermissionError(13, "Permission denied")
		real_replace(src, dst)

	monkeypatch.setattr("forgec.writer.os.replace", flaky)
	with pytest.raises(WriteError):
		write_artifacts([Artifact(tmp_path / "exports.go", "new shim"), Artifact(tmp_path / "forgec.h", "header")])
	assert list(tmp_path.iterdir()) == []


def test_successful_write_leaves_no_backups(tmp_path: Path) -> None:
	(tmp_path / "forgec.h").write_text("old")
	write_artifacts([Artifact(tmp_path / "forgec.h", "new")])
	assert [p.name for p in tmp_path.iterdir()] == ["forgec.h"]
	assert (tmp_path / "forgec.h").read_text() == "new"
