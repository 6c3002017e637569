"""handoffpack core package - transcript indexing, archiving, verification."""

from .archive import write_archive
from .assembler import BuildResult, HandoffAssembler
from .capture import CaptureResult, CommandResult, CommandRunner, SubprocessRunner
from .config import HandoffConfig, load_config
from .errors import HandoffConfigError, HandoffError, StagingConflictError, TemplateError
from .hashing import sha256_hex
from .index import ChatIndex, MessageIndexEntry, build_chat_index, extract_content
from .render import render_canonical
from .transcript import Message, ParsedTranscript, parse_transcript
from .verify import ArchiveVerifier, VerificationFailure, VerificationReport, verify_archive

__all__ = [
    "ArchiveVerifier",
    "BuildResult",
    "CaptureResult",
    "ChatIndex",
    "CommandResult",
    "CommandRunner",
    "HandoffAssembler",
    "HandoffConfig",
    "HandoffConfigError",
    "HandoffError",
    "Message",
    "MessageIndexEntry",
    "ParsedTranscript",
    "StagingConflictError",
    "SubprocessRunner",
    "TemplateError",
    "VerificationFailure",
    "VerificationReport",
    "build_chat_index",
    "extract_content",
    "load_config",
    "parse_transcript",
    "render_canonical",
    "sha256_hex",
    "verify_archive",
    "write_archive",
]
