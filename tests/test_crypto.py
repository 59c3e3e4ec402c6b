"""
CipherRoom - Cryptography tests.

Tests for envelope sealing and opening with a shared code.
"""

import base64
import dataclasses

import pytest

from cipherroom import crypto
from cipherroom.constants import KEY_SIZE, NONCE_SIZE, SALT_SIZE, TAG_SIZE
from cipherroom.errors import CryptoError, DecryptionFailed, ErrorCode
from cipherroom.message import Envelope, validate_shape


def test_seal_open_roundtrip():
    """Test that a note opens with the code it was sealed with."""
    envelope = crypto.seal("hello", "abc123")

    assert crypto.open_envelope(envelope, "abc123") == "hello"


def test_sealed_envelope_shape():
    """Test envelope field sizes and metadata."""
    envelope = crypto.seal("hello", "abc123", sender="Alice")

    assert validate_shape(envelope.to_dict())
    assert envelope.sender == "Alice"
    assert len(base64.b64decode(envelope.salt)) == SALT_SIZE
    assert len(base64.b64decode(envelope.iv)) == NONCE_SIZE
    assert len(base64.b64decode(envelope.ciphertext)) == len("hello") + TAG_SIZE
    assert "hello" not in envelope.ciphertext


def test_default_sender():
    envelope = crypto.seal("hi", "abc123")
    assert envelope.sender == "You"


def test_wrong_code_fails():
    """Test that a different code cannot open the envelope."""
    envelope = crypto.seal("hello", "abc123")

    with pytest.raises(DecryptionFailed) as exc_info:
        crypto.open_envelope(envelope, "abc124")

    assert exc_info.value.code == ErrorCode.E102_DECRYPTION_FAILED
    assert exc_info.value.details["id"] == envelope.id


def test_sealing_twice_gives_unrelated_envelopes():
    """Test fresh id, salt and nonce on every seal."""
    first = crypto.seal("same text", "abc123")
    second = crypto.seal("same text", "abc123")

    assert first.id != second.id
    assert first.salt != second.salt
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext

    assert crypto.open_envelope(first, "abc123") == "same text"
    assert crypto.open_envelope(second, "abc123") == "same text"


def test_unicode_roundtrip():
    """Test multi-byte text survives sealing."""
    text = "Grüße 👋 ñ 你好\nsecond line"
    envelope = crypto.seal(text, "pässwörd")

    assert crypto.open_envelope(envelope, "pässwörd") == text


def test_empty_note_roundtrip():
    envelope = crypto.seal("", "abc123")
    assert crypto.open_envelope(envelope, "abc123") == ""


def test_seal_requires_code():
    """Test that an empty code is refused."""
    with pytest.raises(CryptoError) as exc_info:
        crypto.seal("hello", "")

    assert exc_info.value.code == ErrorCode.E101_ENCRYPTION_FAILED


def test_tampered_ciphertext_fails():
    """Test that flipping one ciphertext bit fails the integrity check."""
    envelope = crypto.seal("hello", "abc123")
    raw = bytearray(base64.b64decode(envelope.ciphertext))
    raw[0] ^= 0x01
    tampered = dataclasses.replace(envelope, ciphertext=base64.b64encode(bytes(raw)).decode())

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(tampered, "abc123")


def test_swapped_salt_fails():
    """Test that a salt from another envelope yields a different key."""
    first = crypto.seal("hello", "abc123")
    second = crypto.seal("hello", "abc123")

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(dataclasses.replace(first, salt=second.salt), "abc123")


def test_invalid_base64_fails():
    envelope = crypto.seal("hello", "abc123")
    broken = dataclasses.replace(envelope, iv="not base64!!")

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(broken, "abc123")


def test_wrong_nonce_length_fails():
    envelope = crypto.seal("hello", "abc123")
    broken = dataclasses.replace(envelope, iv=base64.b64encode(b"\x00" * 8).decode())

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(broken, "abc123")


def test_peer_envelope_without_valid_crypto(sample_envelope_data):
    """Test that a well-formed but undecryptable envelope raises, not crashes."""
    envelope = Envelope.from_dict(sample_envelope_data)

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(envelope, "abc123")


def test_derive_key_deterministic():
    """Test key derivation is stable per (code, salt)."""
    salt = b"\x01" * SALT_SIZE

    key1 = crypto.derive_key("abc123", salt)
    key2 = crypto.derive_key("abc123", salt)
    key3 = crypto.derive_key("abc123", b"\x02" * SALT_SIZE)

    assert len(key1) == KEY_SIZE
    assert key1 == key2
    assert key1 != key3


def test_key_cache_reuses_keys():
    """Test that the cache derives once per salt and code."""
    cache = crypto.KeyCache()
    envelope = crypto.seal("hello", "abc123")

    assert crypto.open_envelope(envelope, "abc123", cache) == "hello"
    assert crypto.open_envelope(envelope, "abc123", cache) == "hello"
    assert len(cache) == 1

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(envelope, "other", cache)
    assert len(cache) == 2

    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_async_roundtrip():
    """Test the worker-thread variants."""
    envelope = await crypto.seal_async("hello", "abc123", "Alice")

    assert envelope.sender == "Alice"
    assert await crypto.open_async(envelope, "abc123") == "hello"
    with pytest.raises(DecryptionFailed):
        await crypto.open_async(envelope, "wrong")


def test_unencodable_code_fails_cleanly():
    """Test that a code with a lone surrogate is a wrong code, not a crash."""
    envelope = crypto.seal("hello", "abc123")

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(envelope, "abc\ud800")
    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(envelope, "abc\ud800", crypto.KeyCache())


def test_truncated_ciphertext_fails():
    envelope = crypto.seal("hello", "abc123")
    short = base64.b64encode(base64.b64decode(envelope.ciphertext)[: TAG_SIZE - 1]).decode()

    with pytest.raises(DecryptionFailed):
        crypto.open_envelope(dataclasses.replace(envelope, ciphertext=short), "abc123")
