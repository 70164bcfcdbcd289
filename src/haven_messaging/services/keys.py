# src/haven_messaging/services/keys.py
"""Per-conversation key derivation."""

from __future__ import annotations

import hashlib
from typing import Final

KEY_SEPARATOR: Final[str] = "_"


def derive_key(user_a: str, user_b: str) -> bytes:
    """Return the 32-byte symmetric key shared by a user pair.

    The ids are sorted before hashing so the result does not depend on who
    sent first. Nothing is stored: the key is recomputed from the ids on
    every call.
    """
    low, high = sorted((user_a, user_b))
    return hashlib.sha256(f"{low}{KEY_SEPARATOR}{high}".encode()).digest()
