# src/haven_messaging/services/errors.py
"""Error kinds raised by the messaging core.

Every service-side error is terminal for the operation that raised it. The
HTTP layer translates these into responses in one place, see
:mod:`haven_messaging.api.v1.errors`.
"""

from __future__ import annotations


class MessagingError(RuntimeError):
    """Base exception for all messaging failures.

    Attributes:
        code: Stable machine-readable error code.
        detail: Human-readable description suitable for API responses.
    """

    code = "messaging_error"
    default_detail = "Messaging operation failed"

    def __init__(self, detail: str | None = None, *, code: str | None = None) -> None:
        self.detail = detail or self.default_detail
        if code is not None:
            self.code = code
        super().__init__(self.detail)


class UserNotFoundError(MessagingError):
    """Raised when a user id does not resolve through the identity provider."""

    code = "user_not_found"
    default_detail = "User not found"


class UnauthorizedError(MessagingError):
    """Raised when the caller lacks admin status or an active package."""

    code = "unauthorized"
    default_detail = "Unauthorized"


class InvalidAddressError(MessagingError):
    """Raised when a message address or conversation id is malformed."""

    code = "invalid_address"
    default_detail = "Invalid message address"


class ConversationNotFoundError(MessagingError):
    """Raised when an addressed conversation does not exist."""

    code = "conversation_not_found"
    default_detail = "Conversation not found"


class UserNotParticipantError(MessagingError):
    """Raised when the requester is not part of the addressed conversation."""

    code = "user_not_participant"
    default_detail = "User is not part of this conversation"


class MessageNotFoundError(MessagingError):
    """Raised when an address decodes but points at no message."""

    code = "message_not_found"
    default_detail = "Message not found"


class DecryptionFailureError(MessagingError):
    """Raised when ciphertext, nonce and key do not match."""

    code = "decryption_failed"
    default_detail = "Message could not be decrypted"


class InvalidMessageContentError(MessagingError):
    """Raised for empty or over-long message bodies."""

    code = "invalid_content"
    default_detail = "Message content is required"


class NetworkError(MessagingError):
    """Raised by the client transport when a request cannot be completed."""

    code = "network_error"
    default_detail = "Request to the messaging service failed"


PACKAGE_REQUIRED = "package_required"


def package_required(action: str) -> UnauthorizedError:
    """Build the actionable error shown to users without an active package."""
    return UnauthorizedError(
        f"You need an active package to {action} messages",
        code=PACKAGE_REQUIRED,
    )
