# src/haven_messaging/models/__init__.py
"""SQLAlchemy models for the messaging service."""

from .conversation import Conversation, ConversationMessage
from .user import User

__all__ = [
    "Conversation", "ConversationMessage",
    "User",
]
