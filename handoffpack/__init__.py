"""handoffpack package root exposing the build and verify pipeline."""

from .core import (  # isort: skip
    ArchiveVerifier,
    HandoffAssembler,
    HandoffConfig,
    build_chat_index,
    parse_transcript,
    verify_archive,
)

__all__ = [
    "ArchiveVerifier",
    "HandoffAssembler",
    "HandoffConfig",
    "build_chat_index",
    "parse_transcript",
    "verify_archive",
]
