from __future__ import annotations

import hashlib

from hypothesis import given
from hypothesis import strategies as st

from phase_gate.utils.hashing import is_sha256_hex, sha256_bytes, sha256_text


def test_known_digest() -> None:
    assert sha256_text("") == (
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )


def test_text_is_not_normalized() -> None:
    assert sha256_text("line\n") != sha256_text("line")
    assert sha256_text("line\r\n") != sha256_text("line\n")


@given(st.text())
def test_text_digest_matches_utf8_bytes(text: str) -> None:
    digest = sha256_text(text)

    assert digest == sha256_bytes(text.encode("utf-8"))
    assert digest == hashlib.sha256(text.encode("utf-8")).hexdigest()
    assert is_sha256_hex(digest)


def test_is_sha256_hex_rejects_non_digests() -> None:
    assert not is_sha256_hex("abc")
    assert not is_sha256_hex(None)
    assert not is_sha256_hex("z" * 64)
