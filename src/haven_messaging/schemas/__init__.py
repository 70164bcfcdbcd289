"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .message import (
    ConversationResponse,
    ConversationSummaryResponse,
    MarkAllReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessagePreviewResponse,
    MessageResponse,
    SendMessageResponse,
    UnreadCountResponse,
    UserSummary,
)

__all__ = [
    "ConversationResponse", "ConversationSummaryResponse",
    "MarkAllReadRequest", "MarkReadResponse",
    "MessageCreate", "MessagePreviewResponse", "MessageResponse",
    "SendMessageResponse", "UnreadCountResponse", "UserSummary",
]
