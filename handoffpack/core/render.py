"""Serialise parsed transcripts into the canonical on-disk format."""

from __future__ import annotations

import json

from .transcript import (
    BEGIN_MARKER,
    CONTENT_MARKER,
    END_MARKER,
    Message,
    ParsedTranscript,
)

SCHEMA_TAG = "chat_raw_v1"
SOURCE_LABEL = "chat_input"


def render_header(created_at: str, timezone_label: str) -> str:
    lines = [
        f"# handoff-pack canonical transcript ({SCHEMA_TAG})",
        "# encoding: utf-8",
        "# newlines: LF only",
        f"# created_at: {created_at}",
        f"# timezone: {timezone_label}",
        "# Message content is stored verbatim and pinned by byte range and sha256",
        "# in chat/0002_chat_index.json. Do not edit message bodies by hand.",
    ]
    return "\n".join(lines) + "\n"


def render_message_block(message: Message) -> str:
    lines = [
        BEGIN_MARKER,
        f"id: {message.id}",
        f"ts: {message.ts if message.ts is not None else 'null'}",
        f"role: {message.role}",
        f"tags: {json.dumps(list(message.tags), ensure_ascii=False)}",
        f"source: {SOURCE_LABEL}",
        CONTENT_MARKER,
        message.content,
        END_MARKER,
    ]
    return "\n".join(lines)


def render_canonical(
    parsed: ParsedTranscript, created_at: str, timezone_label: str
) -> str:
    """Return the canonical transcript text for ``parsed``.

    Canonical blocks are emitted byte-for-byte as the parser found them; only
    fallback messages are formatted here. Blocks are separated by a blank line
    and the text ends with a newline.
    """
    if parsed.is_canonical:
        blocks = list(parsed.blocks)
    else:
        blocks = [render_message_block(message) for message in parsed.messages]

    header = render_header(created_at, timezone_label)
    if not blocks:
        return header
    return header + "\n" + "\n\n".join(blocks) + "\n"
