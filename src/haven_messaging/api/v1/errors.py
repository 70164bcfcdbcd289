"""Translation of messaging errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from haven_messaging.services.errors import (
    ConversationNotFoundError,
    DecryptionFailureError,
    InvalidAddressError,
    InvalidMessageContentError,
    MessageNotFoundError,
    MessagingError,
    UnauthorizedError,
    UserNotFoundError,
    UserNotParticipantError,
)

_STATUS_BY_ERROR: dict[type[MessagingError], int] = {
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    ConversationNotFoundError: status.HTTP_404_NOT_FOUND,
    MessageNotFoundError: status.HTTP_404_NOT_FOUND,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    UserNotParticipantError: status.HTTP_403_FORBIDDEN,
    InvalidAddressError: status.HTTP_400_BAD_REQUEST,
    InvalidMessageContentError: status.HTTP_400_BAD_REQUEST,
    DecryptionFailureError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def to_http_exception(err: MessagingError) -> HTTPException:
    """Return the HTTP exception matching a messaging error."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type in type(err).__mro__:
        if error_type in _STATUS_BY_ERROR:
            status_code = _STATUS_BY_ERROR[error_type]
            break
    return HTTPException(
        status_code=status_code,
        detail={"code": err.code, "detail": err.detail},
    )
