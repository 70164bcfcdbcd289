# src/haven_messaging/services/conversation_service.py
"""Conversation service: the public messaging operations.

Sending encrypts with the pair's derived key and appends to the pair's
conversation. Fetching decrypts and annotates each message with its address
and its derived recipient. Read flags only ever move from False to True.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from haven_messaging.core.settings import settings
from haven_messaging.db.time import as_utc, utcnow
from haven_messaging.models import Conversation, ConversationMessage
from haven_messaging.repositories.conversation_repo import (
    READ_BY_RECIPIENT,
    READ_BY_SENDER,
    ConversationRepository,
)
from haven_messaging.services.addressing import (
    MessageAddress,
    NativeMessageAddress,
    decode_address,
    encode_address,
)
from haven_messaging.services.codec import MessageCodec
from haven_messaging.services.errors import (
    ConversationNotFoundError,
    DecryptionFailureError,
    InvalidAddressError,
    InvalidMessageContentError,
    MessageNotFoundError,
    UnauthorizedError,
    UserNotFoundError,
    UserNotParticipantError,
    package_required,
)
from haven_messaging.services.identity import (
    IdentityProvider,
    SqlIdentityProvider,
    UserIdentity,
)
from haven_messaging.services.keys import derive_key
from haven_messaging.utils.ids import is_valid_object_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageView:
    """Decrypted message as returned to callers."""

    address: str
    conversation_id: str
    message_id: str
    index: int
    sender: str
    recipient: str
    content: str | None
    read_by_sender: bool
    read_by_recipient: bool
    created_at: datetime
    error: str | None = None


@dataclass(frozen=True)
class ConversationView:
    """Messages of one conversation in stored order."""

    conversation_id: str | None
    messages: list[MessageView]


@dataclass(frozen=True)
class MessagePreview:
    """Truncated last message shown in the admin conversation list."""

    content: str | None
    created_at: datetime
    sender: str
    error: str | None = None


@dataclass(frozen=True)
class ConversationSummary:
    """One row of the admin conversation list."""

    conversation_id: str
    user: UserIdentity
    last_message: MessagePreview | None
    unread_count: int
    last_updated: datetime


def truncate_preview(text: str, length: int | None = None, suffix: str | None = None) -> str:
    """Shorten ``text`` for list previews."""
    limit = settings.message_preview_length if length is None else length
    tail = settings.message_preview_suffix if suffix is None else suffix
    if len(text) <= limit:
        return text
    return text[:limit] + tail


def prioritize_unread(summaries: Iterable[ConversationSummary]) -> list[ConversationSummary]:
    """Order summaries unread-first, then by most recent message."""

    def _last_activity(summary: ConversationSummary) -> float:
        if summary.last_message is None:
            return as_utc(summary.last_updated).timestamp()
        return as_utc(summary.last_message.created_at).timestamp()

    return sorted(
        summaries,
        key=lambda summary: (summary.unread_count == 0, -_last_activity(summary)),
    )


class ConversationService:
    """Public messaging operations over the conversation store."""

    def __init__(
        self,
        db: Session,
        identity: IdentityProvider | None = None,
        codec: MessageCodec | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.repo = ConversationRepository(db)
        self.identity = identity or SqlIdentityProvider(db)
        self.codec = codec or MessageCodec()
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_content(plaintext: object) -> str:
        if not isinstance(plaintext, str) or not plaintext.strip():
            raise InvalidMessageContentError()
        if len(plaintext) > settings.message_max_length:
            raise InvalidMessageContentError(
                f"Message content must be at most {settings.message_max_length} characters"
            )
        return plaintext

    def send_message(self, sender_id: str, recipient_id: str, plaintext: str) -> MessageView:
        """Encrypt and append a message from ``sender_id`` to ``recipient_id``.

        Raises:
            InvalidMessageContentError: If the body is empty or too long.
            UserNotFoundError: If either id does not resolve.
            UnauthorizedError: If the sender is neither admin nor has an active package.
        """
        content = self._validate_content(plaintext)
        sender = self.identity.resolve_user(sender_id)
        recipient = self.identity.resolve_user(recipient_id)

        if sender.id == recipient.id:
            raise UnauthorizedError("Cannot send a message to yourself")
        if not sender.may_message:
            raise package_required("send")

        body = self.codec.encrypt(content, derive_key(sender.id, recipient.id))
        conversation = self.repo.find_or_create(sender.id, recipient.id)
        message = self.repo.append(
            conversation,
            sender_id=sender.id,
            ciphertext=body.ciphertext,
            iv=body.iv,
            created_at=self.clock(),
        )
        self.db.commit()
        logger.info(
            "Message %s appended to conversation %s by %s",
            message.position,
            conversation.id,
            sender.id,
        )
        return self._view(conversation, message, content)

    def send_message_to_admin(self, sender_id: str, plaintext: str) -> MessageView:
        """Send a message from a user to the admin side."""
        self._validate_content(plaintext)
        admin = self.identity.find_admin()
        return self.send_message(sender_id, admin.id, plaintext)

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    def _view(
        self,
        conversation: Conversation,
        message: ConversationMessage,
        content: str | None,
        error: str | None = None,
    ) -> MessageView:
        return MessageView(
            address=encode_address(conversation.id, message.position),
            conversation_id=conversation.id,
            message_id=message.id,
            index=message.position,
            sender=message.sender_id,
            recipient=conversation.other_participant(message.sender_id),
            content=content,
            read_by_sender=message.read_by_sender,
            read_by_recipient=message.read_by_recipient,
            created_at=as_utc(message.created_at),
            error=error,
        )

    def _decrypt(self, message: ConversationMessage, key: bytes) -> tuple[str | None, str | None]:
        try:
            return self.codec.decrypt(message.ciphertext, message.iv, key), None
        except DecryptionFailureError as err:
            logger.warning(
                "Could not decrypt message %s of conversation %s",
                message.position,
                message.conversation_id,
            )
            return None, err.code

    def get_conversation(self, user_id: str, other_user_id: str) -> ConversationView:
        """Return the decrypted conversation between two users.

        ``user_id`` is the requester. Access needs an admin on either side or
        an active package for the requester; messages that fail to decrypt
        are returned with ``content=None`` and an ``error`` marker.
        """
        requester = self.identity.resolve_user(user_id)
        other = self.identity.resolve_user(other_user_id)
        if not (requester.is_admin or other.is_admin or requester.has_active_package):
            raise package_required("view")

        conversation = self.repo.find_between(requester.id, other.id)
        if conversation is None:
            return ConversationView(conversation_id=None, messages=[])

        key = derive_key(*conversation.participants)
        views = []
        for message in self.repo.list_messages(conversation.id):
            content, error = self._decrypt(message, key)
            views.append(self._view(conversation, message, content, error))
        return ConversationView(conversation_id=conversation.id, messages=views)

    # ------------------------------------------------------------------ #
    # Read receipts
    # ------------------------------------------------------------------ #

    def _participant_conversation(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self.repo.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError()
        if not conversation.has_participant(user_id):
            logger.warning(
                "User %s is not a participant in conversation %s", user_id, conversation_id
            )
            raise UserNotParticipantError()
        return conversation

    def _locate(
        self, address: MessageAddress | NativeMessageAddress, user_id: str
    ) -> tuple[Conversation, ConversationMessage]:
        if isinstance(address, NativeMessageAddress):
            found = self.repo.get_message_by_id(address.message_id)
            if found is None:
                raise MessageNotFoundError()
            conversation = self._participant_conversation(found.conversation_id, user_id)
            return conversation, found

        conversation = self._participant_conversation(address.conversation_id, user_id)
        message = self.repo.get_message(conversation.id, address.index)
        if message is None:
            raise MessageNotFoundError("Message not found at the specified index")
        return conversation, message

    def mark_message_as_read(self, address: str, requesting_user_id: str) -> bool:
        """Mark one message read for the requester's role in it.

        Returns True if a flag changed; repeating the call is a no-op.
        """
        decoded = decode_address(address)
        conversation, message = self._locate(decoded, requesting_user_id)

        flag = READ_BY_SENDER if message.sender_id == requesting_user_id else READ_BY_RECIPIENT
        changed = self.repo.set_read_flag(conversation.id, message.position, flag)
        if changed:
            self.db.commit()
            logger.info(
                "Message %s of conversation %s marked %s by %s",
                message.position,
                conversation.id,
                flag,
                requesting_user_id,
            )
        else:
            logger.debug(
                "Message %s of conversation %s already %s",
                message.position,
                conversation.id,
                flag,
            )
        return changed

    def _positions_for(
        self, conversation: Conversation, addresses: Iterable[str]
    ) -> set[int]:
        positions: set[int] = set()
        for raw in addresses:
            decoded = decode_address(raw)
            if isinstance(decoded, NativeMessageAddress):
                found = self.repo.get_message_by_id(decoded.message_id)
                if found is None:
                    raise MessageNotFoundError()
                owner, index = found.conversation_id, found.position
            else:
                owner, index = decoded.conversation_id, decoded.index
            if owner != conversation.id:
                raise InvalidAddressError("Address belongs to a different conversation")
            positions.add(index)
        return positions

    def mark_all_as_read(
        self,
        conversation_id: str,
        requesting_user_id: str,
        addresses: Iterable[str] | None = None,
    ) -> int:
        """Mark every message of a conversation read for the requester.

        ``addresses`` optionally restricts the update to those messages.
        Returns the number of flags changed; zero is a successful no-op.
        """
        if not is_valid_object_id(conversation_id):
            raise InvalidAddressError("Invalid conversation ID format")
        conversation = self._participant_conversation(conversation_id, requesting_user_id)

        positions = None if addresses is None else self._positions_for(conversation, addresses)
        updated = self.repo.mark_read_for(conversation, requesting_user_id, positions)
        if updated:
            self.db.commit()
            logger.info(
                "Marked %d messages as read for %s in conversation %s",
                updated,
                requesting_user_id,
                conversation.id,
            )
        else:
            logger.debug(
                "No unread messages for %s in conversation %s",
                requesting_user_id,
                conversation.id,
            )
        return updated

    def unread_count(self, user_id: str) -> int:
        """Return how many messages addressed to ``user_id`` are unread."""
        return self.repo.count_unread(user_id)

    # ------------------------------------------------------------------ #
    # Admin listing
    # ------------------------------------------------------------------ #

    def list_admin_conversations(self, admin_id: str) -> list[ConversationSummary]:
        """Summaries of every conversation of an admin, most recent first."""
        admin = self.identity.resolve_user(admin_id)
        if not admin.is_admin:
            raise UnauthorizedError()

        summaries = []
        for conversation in self.repo.find_by_participant(admin.id):
            other_id = conversation.other_participant(admin.id)
            try:
                other = self.identity.resolve_user(other_id)
            except UserNotFoundError:
                logger.debug("Skipping conversation %s with unknown user", conversation.id)
                continue

            messages = self.repo.list_messages(conversation.id)
            preview = None
            if messages:
                last = messages[-1]
                content, error = self._decrypt(last, derive_key(*conversation.participants))
                preview = MessagePreview(
                    content=truncate_preview(content) if content is not None else None,
                    created_at=as_utc(last.created_at),
                    sender=last.sender_id,
                    error=error,
                )
            unread = sum(
                1 for message in messages
                if message.sender_id == other.id and not message.read_by_recipient
            )
            summaries.append(
                ConversationSummary(
                    conversation_id=conversation.id,
                    user=other,
                    last_message=preview,
                    unread_count=unread,
                    last_updated=as_utc(conversation.last_updated),
                )
            )
        return summaries
