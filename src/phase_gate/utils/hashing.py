"""
phase-gate: hashing utilities

File: src/phase_gate/utils/hashing.py

Purpose
- Provide deterministic SHA-256 helpers for artifact bytes and text.

Functional requirements
- Digests are lowercase hex and stable across platforms.
- Text is hashed exactly as given; no newline or whitespace normalization.

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import hashlib
import string
from typing import Final

_SHA256_HEX_LENGTH: Final[int] = 64
_HEX_DIGITS: Final[frozenset[str]] = frozenset(string.hexdigits)

__all__ = [
    "is_sha256_hex",
    "sha256_bytes",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def is_sha256_hex(value: object) -> bool:
    """Return ``True`` when ``value`` looks like a SHA-256 hex digest."""

    if not isinstance(value, str) or len(value) != _SHA256_HEX_LENGTH:
        return False
    return set(value).issubset(_HEX_DIGITS)
