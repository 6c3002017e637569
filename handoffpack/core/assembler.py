"""Assemble a handoff pack: transcript, index, context docs, repo capture."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping

from ..observability import record_build_outcome
from .archive import write_archive
from .capture import CaptureResult, CommandRunner, SubprocessRunner, capture_repository
from .config import HandoffConfig
from .index import ChatIndex, build_chat_index
from .layout import (
    ARTIFACTS_DIR,
    CHAT_INDEX_PATH,
    CHAT_RAW_PATH,
    CONTEXT_DIR,
    PLATFORM_EXPORT_DIR,
    README_PATH,
    REPO_CAPTURE_FILES,
)
from .render import render_canonical
from .staging import StagingTree
from .templates import TemplateManifest
from .transcript import ParsedTranscript, parse_transcript

logger = logging.getLogger("handoffpack.assembler")

BACKTICK_RUN = re.compile(r"`+")


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat(timespec="seconds")


def append_capture(document: str, capture: CaptureResult) -> str:
    head = document.rstrip("\n")
    body = capture.text if capture.text.endswith("\n") else capture.text + "\n"
    longest = max((len(run) for run in BACKTICK_RUN.findall(body)), default=0)
    fence = "`" * max(3, longest + 1)
    return f"{head}\n\n{fence}text\n{body}{fence}\n"


@dataclass
class BuildResult:
    archive_path: Path
    index: ChatIndex
    parsed: ParsedTranscript
    captures: Dict[str, CaptureResult] = field(default_factory=dict)
    staged_files: list[str] = field(default_factory=list)

    @property
    def capture_errors(self) -> list[str]:
        return sorted(name for name, capture in self.captures.items() if not capture.ok)


class HandoffAssembler:
    """Build a handoff pack archive from a chat transcript and a repository."""

    def __init__(
        self,
        config: HandoffConfig | None = None,
        runner: CommandRunner | None = None,
        environ: Mapping[str, str] | None = None,
        templates: TemplateManifest | None = None,
    ) -> None:
        self.config = config or HandoffConfig()
        self.runner = runner or SubprocessRunner()
        self.environ = dict(os.environ if environ is None else environ)
        self.templates = templates or TemplateManifest.load(self.config.templates_dir)

    def build(
        self,
        chat_text: str | bytes,
        output_path: Path,
        *,
        repo_root: Path,
        created_at: datetime | None = None,
        platform_export: Path | None = None,
        staging_dir: Path | None = None,
    ) -> BuildResult:
        stamp = format_timestamp(created_at or datetime.now(timezone.utc))
        if staging_dir is not None:
            return self._build_in(
                StagingTree(staging_dir), chat_text, output_path, repo_root, stamp, platform_export
            )
        with tempfile.TemporaryDirectory(prefix="handoff-stage-") as scratch:
            return self._build_in(
                StagingTree(Path(scratch)), chat_text, output_path, repo_root, stamp, platform_export
            )

    def _build_in(
        self,
        staging: StagingTree,
        chat_text: str | bytes,
        output_path: Path,
        repo_root: Path,
        stamp: str,
        platform_export: Path | None,
    ) -> BuildResult:
        tz_label = self.config.timezone
        values = {"CREATED_AT": stamp}

        parsed = parse_transcript(chat_text)
        canonical = render_canonical(parsed, stamp, tz_label)
        index = build_chat_index(canonical, stamp, tz_label)
        staging.write_text(CHAT_RAW_PATH, canonical)
        staging.write_text(CHAT_INDEX_PATH, index.to_json())

        for doc in self.templates.context:
            staging.write_text(
                f"{CONTEXT_DIR}/{doc.name}", self.templates.render(doc.template, values)
            )

        captures = capture_repository(
            self.runner,
            repo_root,
            git_log_limit=self.config.git_log_limit,
            environ=self.environ,
            include_environment=self.config.include_environment,
            shell_probe=self.config.shell_probe,
        )
        for name, capture in captures.items():
            staging.write_text(REPO_CAPTURE_FILES[name], capture.text)

        for doc in self.templates.artifacts:
            text = self.templates.render(doc.template, values)
            if doc.capture:
                text = append_capture(text, captures[doc.capture])
            staging.write_text(f"{ARTIFACTS_DIR}/{doc.name}", text)

        if platform_export is not None:
            staging.copy_file(
                f"{PLATFORM_EXPORT_DIR}/{platform_export.name}", platform_export
            )

        layout = sorted([*staging.written, README_PATH])
        readme = self.templates.render(
            self.templates.readme,
            {
                **values,
                "TIMEZONE": tz_label,
                "MESSAGE_COUNT": str(index.message_count),
                "ARCHIVE_LAYOUT": "\n".join(f"- `{path}`" for path in layout),
            },
        )
        staging.write_text(README_PATH, readme)

        archive_path = write_archive(staging.root, output_path)
        result = BuildResult(
            archive_path=archive_path,
            index=index,
            parsed=parsed,
            captures=captures,
            staged_files=list(staging.written),
        )
        logger.info(
            "handoff_built",
            extra={
                "archive": str(archive_path),
                "message_count": index.message_count,
                "capture_errors": result.capture_errors,
            },
        )
        record_build_outcome(str(archive_path), index.message_count, result.capture_errors)
        return result
