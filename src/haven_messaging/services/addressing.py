# src/haven_messaging/services/addressing.py
"""Message addresses: locating a message without a primary-key lookup.

A message is addressed by the conversation it lives in and its zero-based
position there. Messages are append-only, so an address captured at fetch
time stays valid for the rest of the session.

Accepted forms:

``v1:<conversation_id>:<index>``
    Canonical form. The only form :func:`encode_address` produces.
``<conversation_id>_msg_<index>``
    Form issued by earlier releases; decoded for compatibility.
``<message_id>``
    Native per-message row id.

Decoding is total: anything that is not exactly one of these shapes raises
:class:`InvalidAddressError` before any storage access happens.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from haven_messaging.services.errors import InvalidAddressError
from haven_messaging.utils.ids import is_valid_object_id

ADDRESS_VERSION: Final[str] = "v1"
ADDRESS_DELIMITER: Final[str] = ":"
LEGACY_DELIMITER: Final[str] = "_msg_"
MAX_INDEX_DIGITS: Final[int] = 9


@dataclass(frozen=True)
class MessageAddress:
    """Position of a message inside a conversation."""

    conversation_id: str
    index: int

    def encode(self) -> str:
        """Return the canonical string form of this address."""
        return encode_address(self.conversation_id, self.index)

    def __str__(self) -> str:
        return self.encode()


@dataclass(frozen=True)
class NativeMessageAddress:
    """Address made of a message's own row id."""

    message_id: str

    def __str__(self) -> str:
        return self.message_id


def _check_conversation_id(value: str) -> str:
    if not is_valid_object_id(value):
        raise InvalidAddressError("Invalid conversation ID format")
    return value


def _parse_index(value: str) -> int:
    if not value:
        raise InvalidAddressError("Message address is missing its index")
    if not (value.isascii() and value.isdigit()) or len(value) > MAX_INDEX_DIGITS:
        raise InvalidAddressError("Message index must be a non-negative integer")
    return int(value)


def encode_address(conversation_id: str, index: int) -> str:
    """Return the canonical address for message ``index`` of a conversation."""
    _check_conversation_id(conversation_id)
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise InvalidAddressError("Message index must be a non-negative integer")
    return f"{ADDRESS_VERSION}{ADDRESS_DELIMITER}{conversation_id}{ADDRESS_DELIMITER}{index}"


def decode_address(value: object) -> MessageAddress | NativeMessageAddress:
    """Parse any accepted address form.

    Raises:
        InvalidAddressError: If ``value`` is not exactly one accepted form.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidAddressError("Valid message ID is required")
    text = value.strip()

    version_prefix = f"{ADDRESS_VERSION}{ADDRESS_DELIMITER}"
    if text.startswith(version_prefix):
        conversation_id, sep, index = text[len(version_prefix):].partition(ADDRESS_DELIMITER)
        if not sep:
            raise InvalidAddressError("Message address is missing its index")
        return MessageAddress(_check_conversation_id(conversation_id), _parse_index(index))

    if LEGACY_DELIMITER in text:
        conversation_id, _, index = text.rpartition(LEGACY_DELIMITER)
        return MessageAddress(_check_conversation_id(conversation_id), _parse_index(index))

    if is_valid_object_id(text):
        return NativeMessageAddress(text)

    raise InvalidAddressError("Invalid message ID format")


def decode_index_address(value: object) -> MessageAddress:
    """Decode ``value`` and require the positional form."""
    address = decode_address(value)
    if not isinstance(address, MessageAddress):
        raise InvalidAddressError("Expected a positional message address")
    return address
