"""Transcript parsing: canonical block detection with an opaque fallback."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from .hashing import decode_bytes, sha256_hex

logger = logging.getLogger("handoffpack.transcript")

BEGIN_MARKER = "<<<BEGIN_MESSAGE>>>"
CONTENT_MARKER = "<<<CONTENT>>>"
END_MARKER = "<<<END_MESSAGE>>>"
CONTENT_LINE = CONTENT_MARKER + "\n"
END_LINE = "\n" + END_MARKER

UNPARSED_TAG = "unparsed"
FALLBACK_ROLE = "user"

CODE_FENCE = "```"
TERMINAL_PROMPT_PATTERN = re.compile(r"[%$#] $", re.MULTILINE)
TERMINAL_LITERAL = "zsh:"


def format_message_id(sequence: int) -> str:
    return f"{sequence:06d}"


def has_code_block(content: str) -> bool:
    return CODE_FENCE in content


def has_terminal_output(content: str) -> bool:
    return TERMINAL_LITERAL in content or bool(TERMINAL_PROMPT_PATTERN.search(content))


@dataclass(frozen=True)
class Message:
    """One transcript message. Built once while parsing, never mutated."""

    id: str
    ts: str | None
    role: str
    content: str
    tags: tuple[str, ...] = ()
    has_code_block: bool = False
    has_terminal_output: bool = False
    mentions_files: tuple[str, ...] = ()
    mentions_commits: tuple[str, ...] = ()
    mentions_commands: tuple[str, ...] = ()
    sha256: str = ""

    @classmethod
    def fallback(cls, raw: str) -> "Message":
        return cls(
            id=format_message_id(1),
            ts=None,
            role=FALLBACK_ROLE,
            content=raw,
            tags=(UNPARSED_TAG,),
            has_code_block=has_code_block(raw),
            has_terminal_output=has_terminal_output(raw),
            sha256=sha256_hex(raw),
        )


class ScanState(str, Enum):
    SEEKING_BEGIN = "seeking-begin"
    SEEKING_CONTENT = "seeking-content"
    SEEKING_END = "seeking-end"
    DONE = "done"


@dataclass(frozen=True)
class MarkerSpan:
    """Character positions of one opening/closing marker pair."""

    start: int
    body_start: int
    body_end: int
    end: int


class MarkerScanner:
    """Walk ``text`` yielding opening/closing marker pairs in order.

    The scanner alternates between the opening state (``seeking-begin`` or
    ``seeking-content``) and ``seeking-end``. It moves to ``done`` when no
    further opening marker exists or an opening marker has no closing marker.
    Whatever was left unmatched at that point is kept on ``tail``.

    ``overlap`` lets the closing search start that many characters before the
    body, so a closing marker that shares the opening marker's newline still
    closes an empty body.
    """

    def __init__(
        self,
        text: str,
        opening: str,
        closing: str,
        *,
        open_state: ScanState,
        overlap: int = 0,
    ) -> None:
        self.text = text
        self.opening = opening
        self.closing = closing
        self.open_state = open_state
        self.overlap = overlap
        self.state = open_state
        self.cursor = 0
        self.tail = ""

    def __iter__(self) -> Iterator[MarkerSpan]:
        pending = 0
        while self.state is not ScanState.DONE:
            if self.state is self.open_state:
                found = self.text.find(self.opening, self.cursor)
                if found == -1:
                    self._finish(self.cursor)
                    continue
                pending = found
                self.state = ScanState.SEEKING_END
                continue

            body_start = pending + len(self.opening)
            close = self.text.find(
                self.closing, max(body_start - self.overlap, pending)
            )
            if close == -1:
                self._finish(pending)
                continue
            end = close + len(self.closing)
            self.cursor = end
            self.state = self.open_state
            yield MarkerSpan(
                start=pending,
                body_start=body_start,
                body_end=max(close, body_start),
                end=end,
            )

    def _finish(self, position: int) -> None:
        self.tail = self.text[position:]
        self.state = ScanState.DONE


@dataclass
class ParsedTranscript:
    """Parser output: verbatim canonical blocks, or a single fallback message."""

    mode: str
    blocks: list[str] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    dropped_tail: str = ""
    dropped_blocks: int = 0
    repaired_blocks: int = 0

    @property
    def is_canonical(self) -> bool:
        return self.mode == "canonical"

    def __len__(self) -> int:
        return len(self.blocks) if self.is_canonical else len(self.messages)


def _normalise_newlines(block: str) -> str:
    return block.replace("\r\n", "\n").replace("\r", "\n")


def looks_canonical(raw: str) -> bool:
    return BEGIN_MARKER in raw and END_MARKER in raw


def parse_transcript(raw: str | bytes) -> ParsedTranscript:
    """Classify ``raw`` as canonical message blocks or wrap it as one message.

    Never raises: input without both framing markers becomes a single
    ``unparsed`` user message whose content is the entire input.
    """
    if isinstance(raw, bytes):
        raw = decode_bytes(raw)

    if not looks_canonical(raw):
        message = Message.fallback(raw)
        logger.debug("transcript_fallback", extra={"chars": len(raw)})
        return ParsedTranscript(mode="fallback", messages=[message])

    scanner = MarkerScanner(
        raw, BEGIN_MARKER, END_MARKER, open_state=ScanState.SEEKING_BEGIN
    )
    blocks: list[str] = []
    dropped_blocks = 0
    repaired_blocks = 0
    for span in scanner:
        block = _normalise_newlines(raw[span.start : span.end])
        if CONTENT_LINE not in block:
            dropped_blocks += 1
            logger.warning(
                "transcript_block_dropped",
                extra={"offset": span.start, "reason": "missing content marker"},
            )
            continue
        if not block.endswith(END_LINE):
            # The index closes a body only at "\n" + END marker.
            block = block[: -len(END_MARKER)] + END_LINE
            repaired_blocks += 1
            logger.warning(
                "transcript_block_repaired",
                extra={"offset": span.start, "reason": "end marker not on its own line"},
            )
        blocks.append(block)

    if scanner.tail.strip():
        logger.warning(
            "transcript_tail_dropped",
            extra={"dropped_chars": len(scanner.tail), "blocks": len(blocks)},
        )
    return ParsedTranscript(
        mode="canonical",
        blocks=blocks,
        dropped_tail=scanner.tail,
        dropped_blocks=dropped_blocks,
        repaired_blocks=repaired_blocks,
    )
