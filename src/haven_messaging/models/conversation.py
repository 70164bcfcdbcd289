# src/haven_messaging/models/conversation.py
"""Models describing two-party conversations and their messages."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from haven_messaging.db.session import Base
from haven_messaging.db.time import utcnow
from haven_messaging.utils.ids import new_object_id


class Conversation(Base):
    """Aggregate root holding every message exchanged by one user pair.

    The pair is stored sorted so that ``(a, b)`` and ``(b, a)`` land on the
    same row; the unique constraint makes concurrent first sends converge.
    """

    __tablename__ = "conversation"
    __table_args__ = (
        UniqueConstraint("participant_low", "participant_high", name="uq_conversation_pair"),
        CheckConstraint("participant_low < participant_high", name="ck_conversation_sorted"),
    )

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    participant_low: Mapped[str] = mapped_column(
        String(24), ForeignKey("user_account.id"), nullable=False, index=True
    )
    participant_high: Mapped[str] = mapped_column(
        String(24), ForeignKey("user_account.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )

    messages: Mapped[list[ConversationMessage]] = relationship(
        "ConversationMessage",
        back_populates="conversation",
        order_by="ConversationMessage.position",
        cascade="all, delete-orphan",
    )

    @property
    def participants(self) -> tuple[str, str]:
        """Return the canonical (sorted) participant pair."""
        return (self.participant_low, self.participant_high)

    def has_participant(self, user_id: str) -> bool:
        """Return True if ``user_id`` is one of the two participants."""
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str:
        """Return the participant that is not ``user_id``."""
        if user_id == self.participant_low:
            return self.participant_high
        return self.participant_low


class ConversationMessage(Base):
    """Encrypted message embedded in a conversation.

    ``position`` is the zero-based index in the conversation; messages are
    append-only so a position never changes once assigned.
    """

    __tablename__ = "conversation_message"
    __table_args__ = (
        UniqueConstraint("conversation_id", "position", name="uq_message_position"),
    )

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_object_id)
    conversation_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("conversation.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sender_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("user_account.id"), nullable=False
    )

    ciphertext: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    iv: Mapped[bytes] = mapped_column(LargeBinary(12), nullable=False)

    read_by_sender: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    read_by_recipient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    conversation: Mapped[Conversation] = relationship("Conversation", back_populates="messages")

    def recipient_id(self) -> str:
        """Return the participant who did not send this message."""
        return self.conversation.other_participant(self.sender_id)
