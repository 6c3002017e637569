"""Repository and environment capture for handoff packs.

Every external command goes through a ``CommandRunner`` so tests can swap in
a fake. A failing command never aborts capture: its diagnostics are returned
as ``ERROR: ...`` text that ends up verbatim inside the archive.
"""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess  # nosec B404 - git and shell probes only
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Protocol, Sequence

from .hashing import ENCODING, ENCODING_ERRORS

logger = logging.getLogger("handoffpack.capture")

UNAVAILABLE = "(unavailable)"
DEFAULT_SHELL_PROBE: tuple[str, ...] = ("sh", "-c", "echo $0")


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def __call__(self, argv: Sequence[str], cwd: Path) -> CommandResult: ...


def _resolve_command(argv: Sequence[str]) -> List[str]:
    if not argv:
        raise ValueError("Command must include at least one argument")
    executable = shutil.which(argv[0])
    if executable:
        return [executable, *argv[1:]]
    return list(argv)


class SubprocessRunner:
    """Run commands with ``subprocess.run`` and never raise on exit status."""

    def __call__(self, argv: Sequence[str], cwd: Path) -> CommandResult:
        completed = subprocess.run(  # nosec B603 - argv built by capture helpers
            _resolve_command(argv),
            cwd=cwd,
            encoding=ENCODING,
            errors=ENCODING_ERRORS,
            capture_output=True,
            check=False,
        )
        return CommandResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


@dataclass(frozen=True)
class CaptureResult:
    name: str
    text: str
    ok: bool


def _describe_failure(argv: Sequence[str], result: CommandResult) -> str:
    detail = result.stderr.strip() or result.stdout.strip() or "no output"
    return f"ERROR: `{' '.join(argv)}` exited with {result.returncode}: {detail}"


def run_capture(
    runner: CommandRunner, name: str, argv: Sequence[str], cwd: Path
) -> CaptureResult:
    """Run one capture command, converting any failure into diagnostic text."""
    try:
        result = runner(argv, cwd)
    except (OSError, UnicodeError, subprocess.SubprocessError) as exc:
        logger.warning(
            "capture_command_failed", extra={"capture": name, "error": str(exc)}
        )
        return CaptureResult(name=name, text=f"ERROR: `{' '.join(argv)}`: {exc}", ok=False)
    if result.returncode != 0:
        logger.warning(
            "capture_command_failed",
            extra={"capture": name, "returncode": result.returncode},
        )
        return CaptureResult(name=name, text=_describe_failure(argv, result), ok=False)
    return CaptureResult(name=name, text=result.stdout, ok=True)


def capture_git_log(runner: CommandRunner, repo_root: Path, limit: int) -> CaptureResult:
    argv = [
        "git",
        "log",
        f"--max-count={limit}",
        "--date=iso-strict",
        "--pretty=format:%H %ad %an%n    %s",
        "--name-status",
    ]
    return run_capture(runner, "git_log", argv, repo_root)


def capture_git_status(runner: CommandRunner, repo_root: Path) -> CaptureResult:
    return run_capture(
        runner, "git_status", ["git", "status", "--porcelain=v1", "--branch"], repo_root
    )


def _probe_line(
    runner: CommandRunner, label: str, argv: Sequence[str], cwd: Path
) -> tuple[str, bool]:
    probe = run_capture(runner, label, argv, cwd)
    value = probe.text.strip() if probe.ok else ""
    return f"{label}: {value or UNAVAILABLE}", probe.ok


def capture_environment(
    runner: CommandRunner,
    repo_root: Path,
    environ: Mapping[str, str],
    shell_probe: Sequence[str] = DEFAULT_SHELL_PROBE,
) -> CaptureResult:
    """Snapshot interpreter, platform, tool versions, and shell compatibility."""
    lines = [
        f"python: {sys.version.split()[0]}",
        f"platform: {platform.platform() or UNAVAILABLE}",
        f"shell_env: {environ.get('SHELL') or UNAVAILABLE}",
        f"term: {environ.get('TERM') or UNAVAILABLE}",
    ]
    git_line, git_ok = _probe_line(runner, "git", ["git", "--version"], repo_root)
    shell_line, shell_ok = _probe_line(runner, "shell_probe", shell_probe, repo_root)
    branch_line, _ = _probe_line(
        runner, "git_branch", ["git", "rev-parse", "--abbrev-ref", "HEAD"], repo_root
    )
    head_line, _ = _probe_line(
        runner, "git_head", ["git", "rev-parse", "HEAD"], repo_root
    )
    lines.extend([git_line, shell_line, branch_line, head_line])
    return CaptureResult(
        name="environment", text="\n".join(lines) + "\n", ok=git_ok and shell_ok
    )


def capture_repository(
    runner: CommandRunner,
    repo_root: Path,
    *,
    git_log_limit: int,
    environ: Mapping[str, str],
    include_environment: bool = True,
    shell_probe: Sequence[str] = DEFAULT_SHELL_PROBE,
) -> Dict[str, CaptureResult]:
    captures = {
        "git_log": capture_git_log(runner, repo_root, git_log_limit),
        "git_status": capture_git_status(runner, repo_root),
    }
    if include_environment:
        captures["environment"] = capture_environment(
            runner, repo_root, environ, shell_probe
        )
    return captures
