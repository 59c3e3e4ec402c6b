"""
CipherRoom - Envelope cryptography.

This module seals and opens message envelopes with a shared code:
- PBKDF2-HMAC-SHA256 (120,000 iterations) stretches the short human code
  into a 256-bit key, using a fresh 16-byte salt per message
- AES-256-GCM encrypts the note under that key with a fresh 12-byte nonce;
  the 16-byte integrity tag is appended to the ciphertext

Every message derives its own key, so no nonce is ever used twice under the
same key. Only the body is confidential: sender and timestamp travel in clear.

All cryptographic operations use the cryptography library (Apache 2.0/BSD).
"""

import asyncio
import base64
import binascii
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .constants import DEFAULT_SENDER, KEY_SIZE, NONCE_SIZE, PBKDF2_ITERATIONS, SALT_SIZE, TAG_SIZE
from .errors import CryptoError, DecryptionFailed, ErrorCode
from .message import Envelope

logger = logging.getLogger(__name__)


def b64encode(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    """Decode standard base64 text, rejecting stray characters."""
    return base64.b64decode(text, validate=True)


def derive_key(passphrase: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """
    Derive a 256-bit AES key from a shared code using PBKDF2-HMAC-SHA256.

    The iteration count is a brute-force cost control: the code is short and
    human-chosen, not a high-entropy secret.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


class KeyCache:
    """
    Derived keys per (salt, code) pair.

    Rendering a conversation opens every envelope again; caching skips the
    repeated PBKDF2 work. The cache lives as long as the session stays
    unlocked and must be cleared whenever it locks.
    """

    def __init__(self):
        self._keys: Dict[Tuple[bytes, str], bytes] = {}

    def get_or_derive(self, passphrase: str, salt: bytes) -> bytes:
        cache_key = (salt, passphrase)
        key = self._keys.get(cache_key)
        if key is None:
            key = derive_key(passphrase, salt)
            self._keys[cache_key] = key
        return key

    def clear(self) -> None:
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)


def generate_envelope_id() -> str:
    """Generate a unique envelope id."""
    return str(uuid.uuid4())


def seal(plaintext: str, passphrase: str, sender: str = DEFAULT_SENDER) -> Envelope:
    """
    Encrypt a note into a new envelope.

    Draws a fresh salt and nonce on every call, so sealing the same text
    twice with the same code yields unrelated envelopes.

    Raises:
        CryptoError: If the code is empty or encryption fails
    """
    if not passphrase:
        raise CryptoError(ErrorCode.E101_ENCRYPTION_FAILED, "A shared code is required to seal")

    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)  # 96-bit nonce for GCM

    try:
        key = derive_key(passphrase, salt)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    except (ValueError, TypeError) as e:
        raise CryptoError(ErrorCode.E101_ENCRYPTION_FAILED, f"Encryption failed: {e}")

    return Envelope(
        id=generate_envelope_id(),
        sender=sender,
        at=datetime.now(timezone.utc).isoformat(),
        salt=b64encode(salt),
        iv=b64encode(nonce),
        ciphertext=b64encode(ciphertext),
    )


def open_envelope(envelope: Envelope, passphrase: str, cache: Optional[KeyCache] = None) -> str:
    """
    Decrypt an envelope with a shared code.

    Raises DecryptionFailed on a wrong code, a failed integrity check or a
    malformed envelope. That is the ordinary wrong-code outcome; the envelope
    itself is never touched.
    """
    try:
        salt = b64decode(envelope.salt)
        nonce = b64decode(envelope.iv)
        ciphertext = b64decode(envelope.ciphertext)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptionFailed("Envelope fields are not valid base64", {"id": envelope.id, "error": str(e)})

    if len(salt) != SALT_SIZE or len(nonce) != NONCE_SIZE:
        raise DecryptionFailed("Envelope salt or nonce has the wrong length", {"id": envelope.id})

    if len(ciphertext) < TAG_SIZE:
        raise DecryptionFailed("Envelope ciphertext is shorter than its integrity tag", {"id": envelope.id})

    try:
        key = cache.get_or_derive(passphrase, salt) if cache is not None else derive_key(passphrase, salt)
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, None)
        return plaintext.decode("utf-8")
    except InvalidTag:
        raise DecryptionFailed(details={"id": envelope.id})
    except ValueError as e:
        # Includes codes that cannot be encoded and plaintext that is not UTF-8
        raise DecryptionFailed(f"Envelope could not be decrypted: {e}", {"id": envelope.id})


async def seal_async(plaintext: str, passphrase: str, sender: str = DEFAULT_SENDER) -> Envelope:
    """Seal in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(seal, plaintext, passphrase, sender)


async def open_async(envelope: Envelope, passphrase: str, cache: Optional[KeyCache] = None) -> str:
    """Open in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(open_envelope, envelope, passphrase, cache)
