# src/haven_messaging/services/codec.py
"""Encryption of individual message bodies."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from haven_messaging.services.errors import DecryptionFailureError

NONCE_BYTES: Final[int] = 12
KEY_BYTES: Final[int] = 32


@dataclass(frozen=True)
class EncryptedBody:
    """Ciphertext plus the nonce it was produced with."""

    ciphertext: bytes
    iv: bytes


class MessageCodec:
    """AES-256-GCM codec for message bodies.

    GCM authenticates the ciphertext, so a wrong key, nonce or a corrupted
    row fails loudly instead of yielding garbage text.
    """

    @staticmethod
    def _cipher(key: bytes) -> AESGCM:
        if len(key) != KEY_BYTES:
            raise ValueError(f"Message keys must be {KEY_BYTES} bytes")
        return AESGCM(key)

    @staticmethod
    def encrypt(plaintext: str, key: bytes) -> EncryptedBody:
        """Encrypt ``plaintext`` under ``key`` with a fresh random nonce."""
        iv = os.urandom(NONCE_BYTES)
        ciphertext = MessageCodec._cipher(key).encrypt(iv, plaintext.encode("utf-8"), None)
        return EncryptedBody(ciphertext=ciphertext, iv=iv)

    @staticmethod
    def decrypt(ciphertext: bytes, iv: bytes, key: bytes) -> str:
        """Return the plaintext for ``ciphertext``.

        Raises:
            DecryptionFailureError: If the key, nonce and ciphertext do not match.
        """
        if len(iv) != NONCE_BYTES:
            raise DecryptionFailureError("Message nonce has an invalid length")
        try:
            raw = MessageCodec._cipher(key).decrypt(iv, ciphertext, None)
            return raw.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError, ValueError) as err:
            raise DecryptionFailureError() from err
