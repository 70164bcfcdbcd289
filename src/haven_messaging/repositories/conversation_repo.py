"""Data access helpers for conversations and their messages."""
from __future__ import annotations

import logging
from collections.abc import Collection
from datetime import datetime
from typing import Final

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from haven_messaging.db.time import as_utc
from haven_messaging.models import Conversation, ConversationMessage

__all__ = ["ConversationRepository", "READ_BY_SENDER", "READ_BY_RECIPIENT"]

logger = logging.getLogger(__name__)

READ_BY_SENDER: Final[str] = "read_by_sender"
READ_BY_RECIPIENT: Final[str] = "read_by_recipient"
_READ_FLAGS: Final[dict[str, object]] = {
    READ_BY_SENDER: ConversationMessage.read_by_sender,
    READ_BY_RECIPIENT: ConversationMessage.read_by_recipient,
}
APPEND_ATTEMPTS: Final[int] = 3


def _participant_filter(user_id: str):
    return or_(
        Conversation.participant_low == user_id,
        Conversation.participant_high == user_id,
    )


class ConversationRepository:
    """Thin wrapper around database access for conversation aggregates."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get(self, conversation_id: str) -> Conversation | None:
        """Return a conversation by identifier."""
        return self.session.get(Conversation, conversation_id)

    def find_between(self, user_a: str, user_b: str) -> Conversation | None:
        """Return the conversation of an unordered user pair, if any."""
        low, high = sorted((user_a, user_b))
        return self.session.execute(
            select(Conversation).where(
                Conversation.participant_low == low,
                Conversation.participant_high == high,
            )
        ).scalars().first()

    def find_or_create(self, user_a: str, user_b: str) -> Conversation:
        """Return the pair's conversation, creating an empty one if needed.

        The insert runs inside a savepoint; losing a race against a concurrent
        first send trips the pair's unique constraint and the winner's row is
        returned instead.
        """
        if user_a == user_b:
            raise ValueError("A conversation needs two distinct participants")
        existing = self.find_between(user_a, user_b)
        if existing is not None:
            return existing

        low, high = sorted((user_a, user_b))
        conversation = Conversation(participant_low=low, participant_high=high)
        try:
            with self.session.begin_nested():
                self.session.add(conversation)
        except IntegrityError:
            logger.debug("Conversation for %s/%s created concurrently; reusing it", low, high)
            winner = self.find_between(low, high)
            if winner is None:
                raise
            return winner

        logger.info("Created conversation %s for %s/%s", conversation.id, low, high)
        return conversation

    def append(
        self,
        conversation: Conversation,
        *,
        sender_id: str,
        ciphertext: bytes,
        iv: bytes,
        created_at: datetime,
    ) -> ConversationMessage:
        """Append a message at the end of the conversation.

        Earlier messages are never touched. ``created_at`` is clamped so that
        timestamps never decrease along the list.
        """
        if not conversation.has_participant(sender_id):
            raise ValueError("Sender must be a participant of the conversation")

        for attempt in range(1, APPEND_ATTEMPTS + 1):
            last = self.session.execute(
                select(ConversationMessage.position, ConversationMessage.created_at)
                .where(ConversationMessage.conversation_id == conversation.id)
                .order_by(ConversationMessage.position.desc())
                .limit(1)
            ).first()
            position = 0 if last is None else last.position + 1
            stamp = created_at if last is None else max(created_at, as_utc(last.created_at))

            message = ConversationMessage(
                conversation_id=conversation.id,
                position=position,
                sender_id=sender_id,
                ciphertext=ciphertext,
                iv=iv,
                read_by_sender=True,
                read_by_recipient=False,
                created_at=stamp,
            )
            try:
                with self.session.begin_nested():
                    self.session.add(message)
                    conversation.last_updated = stamp
            except IntegrityError:
                logger.debug(
                    "Position %d of conversation %s taken (attempt %d)",
                    position,
                    conversation.id,
                    attempt,
                )
                continue
            return message

        raise RuntimeError(f"Could not append to conversation {conversation.id}")

    def get_message(self, conversation_id: str, index: int) -> ConversationMessage | None:
        """Return the message at ``index`` of a conversation."""
        return self.session.execute(
            select(ConversationMessage).where(
                ConversationMessage.conversation_id == conversation_id,
                ConversationMessage.position == index,
            )
        ).scalars().first()

    def get_message_by_id(self, message_id: str) -> ConversationMessage | None:
        """Return a message by its native row id."""
        return self.session.get(ConversationMessage, message_id)

    def list_messages(self, conversation_id: str) -> list[ConversationMessage]:
        """Return every message of a conversation in stored order."""
        result = self.session.execute(
            select(ConversationMessage)
            .where(ConversationMessage.conversation_id == conversation_id)
            .order_by(ConversationMessage.position)
        )
        return list(result.scalars())

    def set_read_flag(
        self, conversation_id: str, index: int, flag_name: str, value: bool = True
    ) -> bool:
        """Set one read flag of one message; return True if it changed.

        Flags only ever move from False to True, so the update is a single
        conditional statement that is safe to repeat.
        """
        column = _READ_FLAGS.get(flag_name)
        if column is None:
            raise ValueError(f"Unknown read flag: {flag_name}")
        if value is not True:
            raise ValueError("Read flags cannot be cleared")

        result = self.session.execute(
            update(ConversationMessage)
            .where(
                ConversationMessage.conversation_id == conversation_id,
                ConversationMessage.position == index,
                column.is_(False),
            )
            .values({flag_name: True})
            .execution_options(synchronize_session="fetch")
        )
        return bool(result.rowcount)

    def mark_read_for(
        self,
        conversation: Conversation,
        user_id: str,
        positions: Collection[int] | None = None,
    ) -> int:
        """Set ``user_id``'s role flag on every matching message.

        Messages ``user_id`` sent get ``read_by_sender``; messages sent by the
        other participant get ``read_by_recipient``. ``positions`` limits the
        update to those indexes. Returns the number of flags changed.
        """
        if positions is not None and not positions:
            return 0

        scope = [ConversationMessage.conversation_id == conversation.id]
        if positions is not None:
            scope.append(ConversationMessage.position.in_(sorted(set(positions))))

        changed = 0
        as_sender = self.session.execute(
            update(ConversationMessage)
            .where(
                *scope,
                ConversationMessage.sender_id == user_id,
                ConversationMessage.read_by_sender.is_(False),
            )
            .values(read_by_sender=True)
            .execution_options(synchronize_session="fetch")
        )
        changed += as_sender.rowcount or 0
        as_recipient = self.session.execute(
            update(ConversationMessage)
            .where(
                *scope,
                ConversationMessage.sender_id != user_id,
                ConversationMessage.read_by_recipient.is_(False),
            )
            .values(read_by_recipient=True)
            .execution_options(synchronize_session="fetch")
        )
        changed += as_recipient.rowcount or 0
        return changed

    def find_by_participant(self, user_id: str) -> list[Conversation]:
        """Return every conversation containing ``user_id``, newest activity first."""
        result = self.session.execute(
            select(Conversation)
            .where(_participant_filter(user_id))
            .order_by(Conversation.last_updated.desc())
        )
        return list(result.scalars())

    def count_unread(self, user_id: str) -> int:
        """Count messages addressed to ``user_id`` that they have not read."""
        count = self.session.execute(
            select(func.count(ConversationMessage.id))
            .join(Conversation, Conversation.id == ConversationMessage.conversation_id)
            .where(
                _participant_filter(user_id),
                ConversationMessage.sender_id != user_id,
                ConversationMessage.read_by_recipient.is_(False),
            )
        ).scalar_one()
        return int(count or 0)
