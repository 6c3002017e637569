"""Tests for archive assembly, repo capture, and deterministic zips."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from zipfile import ZipFile

import pytest

from handoffpack.core import CommandResult, HandoffAssembler, HandoffConfig
from handoffpack.core.archive import FIXED_DATE_TIME, write_archive
from handoffpack.core.capture import SubprocessRunner, capture_environment, capture_git_status
from handoffpack.core.errors import StagingConflictError
from handoffpack.core.hashing import encode_text
from handoffpack.core.staging import StagingTree

from conftest import CREATED_AT, CREATED_AT_DT, canonical_block

ENVIRON = {"SHELL": "/bin/zsh", "TERM": "xterm-256color"}


def _assembler(runner, **config) -> HandoffAssembler:
    return HandoffAssembler(config=HandoffConfig(**config), runner=runner, environ=ENVIRON)


def _read(archive: Path, name: str) -> str:
    with ZipFile(archive) as zf:
        return zf.read(name).decode("utf-8")


def test_build_writes_expected_layout(tmp_path: Path, runner) -> None:
    export = tmp_path / "conversations.json"
    export.write_text('{"title": "demo"}', encoding="utf-8")

    result = _assembler(runner).build(
        canonical_block("hello") + "\n" + canonical_block("world"),
        tmp_path / "pack.zip",
        repo_root=tmp_path,
        created_at=CREATED_AT_DT,
        platform_export=export,
    )

    with ZipFile(result.archive_path) as zf:
        names = zf.namelist()
    assert names == sorted(names)
    assert {
        "README.md",
        "chat/0001_chat_raw.md",
        "chat/0002_chat_index.json",
        "context/00_handoff_overview.md",
        "artifacts/commits.md",
        "artifacts/files_created.md",
        "repo/git_log.txt",
        "repo/git_status.txt",
        "repo/environment.txt",
        "platform_export/conversations.json",
    } <= set(names)
    assert _read(result.archive_path, "platform_export/conversations.json") == '{"title": "demo"}'

    index = json.loads(_read(result.archive_path, "chat/0002_chat_index.json"))
    assert index["message_count"] == 2
    assert index["created_at"] == CREATED_AT
    assert result.capture_errors == []


def test_templates_get_timestamp_and_readme_lists_layout(tmp_path: Path, runner) -> None:
    result = _assembler(runner).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    overview = _read(result.archive_path, "context/00_handoff_overview.md")
    readme = _read(result.archive_path, "README.md")
    assert f"Generated: {CREATED_AT}" in overview
    assert "{{" not in overview
    assert "Messages: 1" in readme
    assert "- `chat/0001_chat_raw.md`" in readme
    assert "- `README.md`" in readme


def test_git_status_failure_is_embedded_not_raised(tmp_path: Path, runner) -> None:
    runner.responses[("git", "status")] = CommandResult(
        returncode=128,
        stdout="",
        stderr="fatal: not a git repository (or any of the parent directories): .git",
    )

    result = _assembler(runner).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    commits = _read(result.archive_path, "artifacts/commits.md")
    files_created = _read(result.archive_path, "artifacts/files_created.md")
    assert "abc123 2026-10-18T12:00:00+00:00 Dev" in commits
    assert "Add index builder" in commits
    assert "ERROR: " in files_created
    assert "not a git repository" in files_created
    assert result.capture_errors == ["git_status"]


def test_missing_git_binary_is_contained(tmp_path: Path, runner) -> None:
    runner.responses = {("git",): FileNotFoundError(2, "No such file or directory", "git")}

    result = _assembler(runner).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    assert _read(result.archive_path, "repo/git_log.txt").startswith("ERROR: ")
    environment = _read(result.archive_path, "repo/environment.txt")
    assert "git: (unavailable)" in environment
    assert "shell_env: /bin/zsh" in environment
    assert set(result.capture_errors) == {"environment", "git_log", "git_status"}


def test_environment_capture_can_be_disabled(tmp_path: Path, runner) -> None:
    result = _assembler(runner, include_environment=False).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    with ZipFile(result.archive_path) as zf:
        assert "repo/environment.txt" not in zf.namelist()
    assert ("git", "--version") not in runner.calls


def test_git_log_limit_is_passed_to_git(tmp_path: Path, runner) -> None:
    _assembler(runner, git_log_limit=7).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    log_calls = [call for call in runner.calls if call[:2] == ("git", "log")]
    assert log_calls and "--max-count=7" in log_calls[0]


def test_identical_inputs_give_identical_archives(tmp_path: Path, runner) -> None:
    assembler = _assembler(runner)
    chat = canonical_block("héllo") + "\n" + canonical_block("wörld")

    first = assembler.build(chat, tmp_path / "a.zip", repo_root=tmp_path, created_at=CREATED_AT_DT)
    second = assembler.build(chat, tmp_path / "b.zip", repo_root=tmp_path, created_at=CREATED_AT_DT)

    assert first.archive_path.read_bytes() == second.archive_path.read_bytes()
    with ZipFile(first.archive_path) as zf:
        for info in zf.infolist():
            assert info.date_time == FIXED_DATE_TIME
            assert info.extra == b""


def test_existing_archive_is_replaced(tmp_path: Path, runner) -> None:
    target = tmp_path / "pack.zip"
    target.write_bytes(b"stale content, not a zip")

    result = _assembler(runner).build(
        "hello", target, repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    with ZipFile(result.archive_path) as zf:
        assert "README.md" in zf.namelist()


def test_staging_paths_are_write_once(tmp_path: Path) -> None:
    staging = StagingTree(tmp_path / "stage")
    staging.write_text("chat/0001_chat_raw.md", "first")

    with pytest.raises(StagingConflictError):
        staging.write_text("chat/0001_chat_raw.md", "second")
    with pytest.raises(ValueError):
        staging.write_text("../escape.md", "nope")
    assert (tmp_path / "stage" / "chat" / "0001_chat_raw.md").read_text() == "first"


def test_write_archive_skips_target_inside_staging(tmp_path: Path) -> None:
    staging = StagingTree(tmp_path)
    staging.write_text("README.md", "readme")
    staging.write_text("chat/notes.md", "notes")

    archive = write_archive(tmp_path, tmp_path / "out.zip")
    again = write_archive(tmp_path, tmp_path / "out.zip")

    with ZipFile(again) as zf:
        assert zf.namelist() == ["README.md", "chat/notes.md"]
    assert archive == again


def test_canonical_text_written_with_lf_only(tmp_path: Path, runner) -> None:
    chat = (canonical_block("one") + "\n" + canonical_block("two")).replace("\n", "\r\n")

    result = _assembler(runner).build(
        chat, tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    with ZipFile(result.archive_path) as zf:
        raw = zf.read("chat/0001_chat_raw.md")
    assert b"\r" not in raw
    assert result.index.message_count == 2


def test_capture_helpers_use_injected_runner(tmp_path: Path, runner) -> None:
    status = capture_git_status(runner, tmp_path)
    environment = capture_environment(runner, tmp_path, {}, ("bash", "-c", "echo ok"))

    assert status.ok and status.text == "## main\n?? notes.md\n"
    assert "shell_env: (unavailable)" in environment.text
    assert ("bash", "-c", "echo ok") in runner.calls


NON_UTF8_COMMAND = [sys.executable, "-c", "import sys; sys.stdout.buffer.write(b'\\xff\\xfe ok')"]


def test_subprocess_runner_keeps_undecodable_output(tmp_path: Path) -> None:
    result = SubprocessRunner()(NON_UTF8_COMMAND, tmp_path)

    assert result.returncode == 0
    assert encode_text(result.stdout) == b"\xff\xfe ok"


def test_non_utf8_shell_output_lands_in_archive(tmp_path: Path) -> None:
    assembler = HandoffAssembler(
        config=HandoffConfig(shell_probe=NON_UTF8_COMMAND),
        runner=SubprocessRunner(),
        environ=ENVIRON,
    )

    result = assembler.build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    with ZipFile(result.archive_path) as zf:
        environment = zf.read("repo/environment.txt")
    assert b"shell_probe: \xff\xfe ok\n" in environment


def test_decode_error_from_runner_is_contained(tmp_path: Path, runner) -> None:
    runner.responses[("git", "log")] = UnicodeDecodeError(
        "utf-8", b"\xff", 0, 1, "invalid start byte"
    )

    result = _assembler(runner).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    assert _read(result.archive_path, "repo/git_log.txt").startswith("ERROR: ")
    assert "git_log" in result.capture_errors


def test_unwritable_destination_propagates(tmp_path: Path, runner) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    staging = StagingTree(tmp_path / "stage")
    staging.write_text("README.md", "readme")

    with pytest.raises(OSError):
        write_archive(staging.root, blocker / "pack.zip")
    with pytest.raises(OSError):
        _assembler(runner).build(
            "hello", blocker / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
        )


def test_capture_with_backtick_fence_stays_enclosed(tmp_path: Path, runner) -> None:
    runner.responses[("git", "log")] = CommandResult(
        returncode=0, stdout="abc123 Add docs\n```\nmake docs\n```\n", stderr=""
    )

    result = _assembler(runner).build(
        "hello", tmp_path / "pack.zip", repo_root=tmp_path, created_at=CREATED_AT_DT
    )

    commits = _read(result.archive_path, "artifacts/commits.md")
    assert "\n````text\nabc123 Add docs\n```\nmake docs\n```\n````\n" in commits
    assert commits.endswith("````\n")
