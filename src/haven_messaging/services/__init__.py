# src/haven_messaging/services/__init__.py
"""Business logic services for the messaging core."""

from .codec import MessageCodec
from .conversation_service import ConversationService
from .identity import SqlIdentityProvider, UserIdentity
from .keys import derive_key

__all__ = [
    "ConversationService",
    "MessageCodec",
    "SqlIdentityProvider",
    "UserIdentity",
    "derive_key",
]
