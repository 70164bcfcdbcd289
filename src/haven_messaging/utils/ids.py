# src/haven_messaging/utils/ids.py
"""Identifier helpers for ObjectId-shaped hex identifiers."""

from __future__ import annotations

import re
import secrets
from typing import Final

OBJECT_ID_LENGTH: Final[int] = 24
_OBJECT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{24}$")


def new_object_id() -> str:
    """Return a fresh 24-character lowercase hex identifier."""
    return secrets.token_hex(OBJECT_ID_LENGTH // 2)


def is_valid_object_id(value: object) -> bool:
    """Return True if ``value`` is a syntactically valid identifier."""
    return isinstance(value, str) and _OBJECT_ID_RE.fullmatch(value) is not None
