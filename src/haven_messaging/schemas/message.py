"""Message-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    """Schema for sending a message."""

    content: str = Field(..., description="Plain text message body")


class MessageResponse(BaseModel):
    """A decrypted message annotated with its address and recipient."""

    address: str = Field(..., description="Opaque address used to mark the message read")
    conversation_id: str
    sender: str
    recipient: str
    content: str | None
    read_by_sender: bool
    read_by_recipient: bool
    created_at: datetime
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SendMessageResponse(BaseModel):
    """Response returned after a message has been stored."""

    status: str = "message_sent"
    message: MessageResponse


class ConversationResponse(BaseModel):
    """Messages of a conversation in stored order."""

    conversation_id: str | None
    messages: list[MessageResponse]

    model_config = ConfigDict(from_attributes=True)


class MarkAllReadRequest(BaseModel):
    """Optional restriction of a mark-all call to specific messages."""

    addresses: list[str] | None = Field(
        default=None,
        description="Addresses to mark; every message when omitted",
    )


class MarkReadResponse(BaseModel):
    """Result of a mark-read operation."""

    status: str = "marked_as_read"
    updated_count: int


class UnreadCountResponse(BaseModel):
    """Number of unread messages addressed to the caller."""

    count: int


class UserSummary(BaseModel):
    """Public identity of the other participant in an admin listing."""

    id: str
    name: str | None = None
    email: str | None = None

    model_config = ConfigDict(from_attributes=True)


class MessagePreviewResponse(BaseModel):
    """Truncated last message of a conversation."""

    content: str | None
    created_at: datetime
    sender: str
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ConversationSummaryResponse(BaseModel):
    """One row of the admin conversation list."""

    conversation_id: str
    user: UserSummary
    last_message: MessagePreviewResponse | None
    unread_count: int
    last_updated: datetime

    model_config = ConfigDict(from_attributes=True)
