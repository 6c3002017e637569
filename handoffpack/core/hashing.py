"""Content hashing helpers for handoff packs."""

from __future__ import annotations

import hashlib

ENCODING = "utf-8"
# Lets arbitrary pasted bytes round-trip through str and back.
ENCODING_ERRORS = "surrogateescape"


def encode_text(text: str) -> bytes:
    return text.encode(ENCODING, errors=ENCODING_ERRORS)


def decode_bytes(data: bytes) -> str:
    return data.decode(ENCODING, errors=ENCODING_ERRORS)


def sha256_hex(data: bytes | str) -> str:
    """Return the lowercase hex SHA-256 of raw bytes or UTF-8 encoded text."""
    if isinstance(data, str):
        data = encode_text(data)
    return hashlib.sha256(data).hexdigest()
