"""Independent read-back verification of handoff pack archives.

The verifier trusts nothing the writer asserted: it unpacks the archive into a
temporary directory, re-reads the transcript bytes, and recomputes every
message digest from the byte ranges in the index.
"""

from __future__ import annotations

import json
import logging
import tempfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable
from zipfile import BadZipFile, ZipFile

from jsonschema import Draft202012Validator  # type: ignore[import-not-found]
from pydantic import ValidationError

from ..observability import record_verification_outcome
from .hashing import sha256_hex
from .index import MessageIndexEntry, extract_content_bytes
from .layout import CHAT_INDEX_PATH, CHAT_RAW_PATH, REQUIRED_FILES

logger = logging.getLogger("handoffpack.verify")

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_SCHEMA = PACKAGE_ROOT / "schemas" / "chat-index.schema.json"


@dataclass(frozen=True)
class VerificationFailure:
    check: str
    detail: str
    path: str | None = None
    message_id: str | None = None
    expected: str | None = None
    actual: str | None = None

    def to_summary(self) -> str:
        if self.check == "missing_file":
            return f"missing required file: {self.path}"
        if self.check == "hash_mismatch":
            return (
                f"message {self.message_id}: sha256 mismatch "
                f"(expected {self.expected}, actual {self.actual})"
            )
        subject = f"message {self.message_id}: " if self.message_id else ""
        return f"{self.check}: {subject}{self.detail}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "detail": self.detail,
            "path": self.path,
            "message_id": self.message_id,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass
class VerificationReport:
    archive: Path
    failures: list[VerificationFailure] = field(default_factory=list)
    checked_messages: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures

    def mismatched_ids(self) -> list[str]:
        return [
            failure.message_id
            for failure in self.failures
            if failure.check == "hash_mismatch" and failure.message_id
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "archive": str(self.archive),
            "ok": self.ok,
            "checked_messages": self.checked_messages,
            "failures": [failure.to_dict() for failure in self.failures],
        }


class ArchiveVerifier:
    """Recheck every hash in a handoff pack against its transcript bytes."""

    def __init__(self, schema_path: Path | None = None) -> None:
        self.schema_path = schema_path or DEFAULT_SCHEMA
        schema = json.loads(self.schema_path.read_text(encoding="utf-8"))
        self.validator = Draft202012Validator(schema)

    def verify(self, archive_path: Path) -> VerificationReport:
        report = self._run(archive_path)
        logger.info(
            "verify_finished",
            extra={
                "archive": str(archive_path),
                "ok": report.ok,
                "checked_messages": report.checked_messages,
                "failures": len(report.failures),
            },
        )
        record_verification_outcome(str(archive_path), report.ok, len(report.failures))
        return report

    def _run(self, archive_path: Path) -> VerificationReport:
        report = VerificationReport(archive=archive_path)
        with tempfile.TemporaryDirectory(prefix="handoff-verify-") as scratch:
            root = Path(scratch)
            try:
                with ZipFile(archive_path) as archive:
                    archive.extractall(root)
            except (BadZipFile, OSError, zlib.error) as exc:
                report.failures.append(
                    VerificationFailure(
                        check="bad_archive", detail=str(exc), path=str(archive_path)
                    )
                )
                return report

            missing = [rel for rel in REQUIRED_FILES if not (root / rel).is_file()]
            for rel in missing:
                report.failures.append(
                    VerificationFailure(
                        check="missing_file", detail="not present in archive", path=rel
                    )
                )
            if CHAT_RAW_PATH in missing or CHAT_INDEX_PATH in missing:
                return report

            payload = self._load_index(root / CHAT_INDEX_PATH, report)
            if payload is None:
                return report
            canonical = (root / CHAT_RAW_PATH).read_bytes()
            self._check_entries(canonical, payload, report)
        return report

    def _load_index(
        self, index_path: Path, report: VerificationReport
    ) -> dict[str, Any] | None:
        try:
            payload = json.loads(index_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            report.failures.append(
                VerificationFailure(
                    check="invalid_index", detail=str(exc), path=CHAT_INDEX_PATH
                )
            )
            return None
        errors = list(self._iter_error_messages(payload))
        for message in errors:
            report.failures.append(
                VerificationFailure(
                    check="invalid_index", detail=message, path=CHAT_INDEX_PATH
                )
            )
        if errors:
            return None
        return payload

    def _iter_error_messages(self, payload: Any) -> Iterable[str]:
        for error in self.validator.iter_errors(payload):
            path = ".".join(str(idx) for idx in error.path) or "index"
            yield f"{path}: {error.message}"

    def _check_entries(
        self, canonical: bytes, payload: dict[str, Any], report: VerificationReport
    ) -> None:
        messages = payload["messages"]
        if payload["message_count"] != len(messages):
            report.failures.append(
                VerificationFailure(
                    check="count_mismatch",
                    detail="message_count does not match number of entries",
                    path=CHAT_INDEX_PATH,
                    expected=str(payload["message_count"]),
                    actual=str(len(messages)),
                )
            )

        for raw_entry in messages:
            message_id = str(raw_entry.get("id"))
            try:
                entry = MessageIndexEntry.model_validate(raw_entry)
            except ValidationError as exc:
                report.failures.append(
                    VerificationFailure(
                        check="range_invalid",
                        detail="; ".join(err["msg"] for err in exc.errors()),
                        path=CHAT_INDEX_PATH,
                        message_id=message_id,
                    )
                )
                continue
            if entry.byte_end > len(canonical):
                report.failures.append(
                    VerificationFailure(
                        check="range_invalid",
                        detail=f"byte_end {entry.byte_end} beyond transcript length {len(canonical)}",
                        path=CHAT_RAW_PATH,
                        message_id=entry.id,
                    )
                )
                continue

            actual = sha256_hex(extract_content_bytes(canonical, entry))
            report.checked_messages += 1
            if actual != entry.sha256:
                logger.warning(
                    "verify_hash_mismatch",
                    extra={"message_id": entry.id, "expected": entry.sha256, "actual": actual},
                )
                report.failures.append(
                    VerificationFailure(
                        check="hash_mismatch",
                        detail="content bytes do not match recorded sha256",
                        path=CHAT_RAW_PATH,
                        message_id=entry.id,
                        expected=entry.sha256,
                        actual=actual,
                    )
                )


def verify_archive(archive_path: Path) -> VerificationReport:
    return ArchiveVerifier().verify(archive_path)
