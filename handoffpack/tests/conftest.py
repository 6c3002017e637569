"""Shared fixtures for handoffpack tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import pytest

from handoffpack.core import CommandResult

CREATED_AT = "2026-10-19T09:30:00+00:00"
CREATED_AT_DT = datetime(2026, 10, 19, 9, 30, 0, tzinfo=timezone.utc)
TZ_LABEL = "UTC"


class FakeRunner:
    """Command runner returning canned results keyed by argv prefix."""

    def __init__(self) -> None:
        self.responses: dict[tuple[str, ...], CommandResult | Exception] = {}
        self.default = CommandResult(returncode=0, stdout="ok\n", stderr="")
        self.calls: list[tuple[str, ...]] = []

    def __call__(self, argv: Sequence[str], cwd: Path) -> CommandResult:
        self.calls.append(tuple(argv))
        for prefix, outcome in self.responses.items():
            if tuple(argv[: len(prefix)]) == prefix:
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return self.default


def canonical_block(
    content: str,
    *,
    role: str = "user",
    msg_id: str = "000001",
    ts: str = "null",
    tags: str = "[]",
) -> str:
    return "\n".join(
        [
            "<<<BEGIN_MESSAGE>>>",
            f"id: {msg_id}",
            f"ts: {ts}",
            f"role: {role}",
            f"tags: {tags}",
            "source: chat_input",
            "<<<CONTENT>>>",
            content,
            "<<<END_MESSAGE>>>",
        ]
    )


@pytest.fixture
def runner() -> FakeRunner:
    fake = FakeRunner()
    fake.responses[("git", "log")] = CommandResult(
        returncode=0,
        stdout="abc123 2026-10-18T12:00:00+00:00 Dev\n    Add index builder\n",
        stderr="",
    )
    fake.responses[("git", "status")] = CommandResult(
        returncode=0, stdout="## main\n?? notes.md\n", stderr=""
    )
    return fake
