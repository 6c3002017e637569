"""Chat index models, the index builder, and the shared content extractor."""

from __future__ import annotations

import json
import logging
from typing import List, Protocol

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from .hashing import decode_bytes, encode_text, sha256_hex
from .transcript import (
    BEGIN_MARKER,
    CONTENT_LINE,
    END_LINE,
    MarkerScanner,
    ScanState,
    format_message_id,
    has_code_block,
    has_terminal_output,
)

logger = logging.getLogger("handoffpack.index")

INDEX_SCHEMA_VERSION = "chat_index_v1"
UNKNOWN_ROLE = "unknown"


class ByteRange(Protocol):
    byte_start: int
    byte_end: int


class MessageIndexEntry(BaseModel):
    """Persisted view of one message: where its content lives and its digest."""

    id: str
    ts: str | None = None
    role: str
    byte_start: int = Field(ge=0)
    byte_end: int = Field(ge=0)
    sha256: str = Field(pattern=r"^[0-9a-f]{64}$")
    tags: List[str] = Field(default_factory=list)
    has_code_block: bool = False
    has_terminal_output: bool = False
    mentions_files: List[str] = Field(default_factory=list)
    mentions_commits: List[str] = Field(default_factory=list)
    mentions_commands: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _ordered_range(self) -> "MessageIndexEntry":
        if self.byte_end < self.byte_start:
            raise ValueError(
                f"message {self.id}: byte_end {self.byte_end} precedes byte_start {self.byte_start}"
            )
        return self


class ChatIndex(BaseModel):
    schema_version: str = INDEX_SCHEMA_VERSION
    created_at: str
    timezone: str
    message_count: int = Field(ge=0)
    messages: List[MessageIndexEntry] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    _dropped_tail: str = PrivateAttr(default="")

    @model_validator(mode="after")
    def _count_matches(self) -> "ChatIndex":
        if self.message_count != len(self.messages):
            raise ValueError(
                f"message_count {self.message_count} does not match {len(self.messages)} entries"
            )
        return self

    @property
    def dropped_tail(self) -> str:
        return self._dropped_tail

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), indent=2, ensure_ascii=False) + "\n"


def _as_bytes(canonical: str | bytes) -> bytes:
    return canonical if isinstance(canonical, bytes) else encode_text(canonical)


def extract_content_bytes(canonical: str | bytes, entry: ByteRange) -> bytes:
    """Return the exact bytes ``[byte_start, byte_end)`` of the canonical text."""
    return _as_bytes(canonical)[entry.byte_start : entry.byte_end]


def extract_content(canonical: str | bytes, entry: ByteRange) -> str:
    return decode_bytes(extract_content_bytes(canonical, entry))


class _Range:
    __slots__ = ("byte_start", "byte_end")

    def __init__(self, byte_start: int, byte_end: int) -> None:
        self.byte_start = byte_start
        self.byte_end = byte_end


class _ByteCursor:
    """Translate increasing character offsets into UTF-8 byte offsets."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.char_pos = 0
        self.byte_pos = 0

    def seek(self, char_pos: int) -> int:
        if char_pos < self.char_pos:
            self.char_pos = 0
            self.byte_pos = 0
        self.byte_pos += len(encode_text(self.text[self.char_pos : char_pos]))
        self.char_pos = char_pos
        return self.byte_pos


def _parse_tags(raw: str) -> list[str]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("index_tags_unparseable", extra={"raw_tags": raw})
        return []
    if not isinstance(data, list):
        return []
    return [str(tag) for tag in data]


def _read_metadata(text: str, floor: int, content_at: int) -> dict[str, object]:
    begin = text.rfind(BEGIN_MARKER, floor, content_at)
    meta: dict[str, object] = {"ts": None, "role": UNKNOWN_ROLE, "tags": []}
    if begin == -1:
        return meta
    header = text[begin + len(BEGIN_MARKER) : content_at]
    for line in header.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key == "ts":
            meta["ts"] = None if value in {"", "null"} else value
        elif key == "role" and value:
            meta["role"] = value
        elif key == "tags":
            meta["tags"] = _parse_tags(value)
    return meta


def build_chat_index(
    canonical_text: str, created_at: str, timezone_label: str
) -> ChatIndex:
    """Scan canonical text and record byte range plus sha256 per message.

    Ids are assigned 1..N in scan order; ids written in block metadata are
    ignored. Scanning stops at the first content marker with no end marker.
    """
    encoded = encode_text(canonical_text)
    cursor = _ByteCursor(canonical_text)
    scanner = MarkerScanner(
        canonical_text,
        CONTENT_LINE,
        END_LINE,
        open_state=ScanState.SEEKING_CONTENT,
        overlap=1,
    )

    entries: list[MessageIndexEntry] = []
    floor = 0
    for sequence, span in enumerate(scanner, start=1):
        byte_range = _Range(cursor.seek(span.body_start), cursor.seek(span.body_end))
        content_bytes = extract_content_bytes(encoded, byte_range)
        content = decode_bytes(content_bytes)
        meta = _read_metadata(canonical_text, floor, span.start)
        entries.append(
            MessageIndexEntry(
                id=format_message_id(sequence),
                ts=meta["ts"],  # type: ignore[arg-type]
                role=str(meta["role"]),
                byte_start=byte_range.byte_start,
                byte_end=byte_range.byte_end,
                sha256=sha256_hex(content_bytes),
                tags=list(meta["tags"]),  # type: ignore[call-overload]
                has_code_block=has_code_block(content),
                has_terminal_output=has_terminal_output(content),
            )
        )
        floor = span.end

    if scanner.tail.strip():
        logger.warning(
            "index_tail_dropped",
            extra={"dropped_chars": len(scanner.tail), "entries": len(entries)},
        )

    index = ChatIndex(
        created_at=created_at,
        timezone=timezone_label,
        message_count=len(entries),
        messages=entries,
    )
    index._dropped_tail = scanner.tail
    return index
