# src/haven_messaging/client/__init__.py
"""Client-side helpers: HTTP transport, polling and read confirmation."""

from .poller import ConversationPoller
from .read_receipts import ReadReceiptConfig, ReadReceiptSession
from .transport import MessagingClient

__all__ = [
    "ConversationPoller",
    "MessagingClient",
    "ReadReceiptConfig",
    "ReadReceiptSession",
]
