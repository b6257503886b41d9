"""Utility exports for hashing helpers."""

from phase_gate.utils.hashing import is_sha256_hex, sha256_bytes, sha256_text

__all__ = [
    "is_sha256_hex",
    "sha256_bytes",
    "sha256_text",
]
