"""Tests for key derivation and the message codec."""

import hashlib

import pytest

from haven_messaging.services.codec import NONCE_BYTES, MessageCodec
from haven_messaging.services.errors import DecryptionFailureError
from haven_messaging.services.keys import derive_key

USER_A = "5f1d2c3b4a5968778695a4b3"
USER_B = "0a1b2c3d4e5f60718293a4b5"


def test_derive_key_is_order_independent() -> None:
    assert derive_key(USER_A, USER_B) == derive_key(USER_B, USER_A)


def test_derive_key_is_sha256_of_sorted_pair() -> None:
    expected = hashlib.sha256(f"{USER_B}_{USER_A}".encode()).digest()
    assert derive_key(USER_A, USER_B) == expected
    assert len(expected) == 32


def test_derive_key_differs_per_pair() -> None:
    other = "ffffffffffffffffffffffff"
    assert derive_key(USER_A, USER_B) != derive_key(USER_A, other)


@pytest.mark.parametrize("plaintext", ["Hello", "", "ünïcødé ✓ 你好", "x" * 4096])
def test_encrypt_then_decrypt_returns_plaintext(plaintext: str) -> None:
    key = derive_key(USER_A, USER_B)
    body = MessageCodec.encrypt(plaintext, key)
    assert MessageCodec.decrypt(body.ciphertext, body.iv, key) == plaintext


def test_encrypt_uses_fresh_nonce_each_call() -> None:
    key = derive_key(USER_A, USER_B)
    first = MessageCodec.encrypt("same text", key)
    second = MessageCodec.encrypt("same text", key)

    assert len(first.iv) == NONCE_BYTES
    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext
    assert b"same text" not in first.ciphertext


def test_decrypt_with_wrong_key_fails_closed() -> None:
    body = MessageCodec.encrypt("secret", derive_key(USER_A, USER_B))
    with pytest.raises(DecryptionFailureError):
        MessageCodec.decrypt(body.ciphertext, body.iv, derive_key(USER_A, "f" * 24))


def test_decrypt_with_tampered_ciphertext_fails_closed() -> None:
    key = derive_key(USER_A, USER_B)
    body = MessageCodec.encrypt("secret", key)
    tampered = bytes([body.ciphertext[0] ^ 0x01]) + body.ciphertext[1:]
    with pytest.raises(DecryptionFailureError):
        MessageCodec.decrypt(tampered, body.iv, key)


def test_decrypt_with_bad_nonce_length_fails_closed() -> None:
    key = derive_key(USER_A, USER_B)
    body = MessageCodec.encrypt("secret", key)
    with pytest.raises(DecryptionFailureError):
        MessageCodec.decrypt(body.ciphertext, b"short", key)
