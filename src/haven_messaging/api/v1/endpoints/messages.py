# src/haven_messaging/api/v1/endpoints/messages.py
"""Messaging endpoints: user/admin conversations and read receipts."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Body, HTTPException, Query, status

from haven_messaging.api.v1.dependencies import (
    AdminUserDep,
    ConversationServiceDep,
    CurrentUserDep,
)
from haven_messaging.api.v1.errors import to_http_exception
from haven_messaging.schemas.message import (
    ConversationResponse,
    ConversationSummaryResponse,
    MarkAllReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageResponse,
    SendMessageResponse,
    UnreadCountResponse,
)
from haven_messaging.services.conversation_service import prioritize_unread
from haven_messaging.services.errors import MessagingError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/to-admin", status_code=status.HTTP_201_CREATED)
async def send_message_to_admin(
    message_data: MessageCreate,
    current_user: CurrentUserDep,
    service: ConversationServiceDep,
) -> SendMessageResponse:
    """Send a message from the current user to the admin."""
    try:
        view = service.send_message_to_admin(current_user.id, message_data.content)
    except MessagingError as err:
        raise to_http_exception(err) from err
    return SendMessageResponse(message=MessageResponse.model_validate(view))


@router.post("/admin/to-user/{user_id}", status_code=status.HTTP_201_CREATED)
async def send_message_to_user(
    user_id: str,
    message_data: MessageCreate,
    admin: AdminUserDep,
    service: ConversationServiceDep,
) -> SendMessageResponse:
    """Send a message from the current admin to a user."""
    try:
        view = service.send_message(admin.id, user_id, message_data.content)
    except MessagingError as err:
        raise to_http_exception(err) from err
    return SendMessageResponse(message=MessageResponse.model_validate(view))


@router.get("/conversation/{user_id}")
async def get_conversation(
    user_id: str,
    current_user: CurrentUserDep,
    service: ConversationServiceDep,
) -> ConversationResponse:
    """Return the decrypted conversation between the admin side and a user.

    Regular users may only pass their own id and receive their thread with
    the admin; admins pass the id of the user whose thread they want.
    """
    try:
        if current_user.is_admin:
            view = service.get_conversation(current_user.id, user_id)
        else:
            if user_id != current_user.id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You can only view your own conversations",
                )
            admin = service.identity.find_admin()
            view = service.get_conversation(current_user.id, admin.id)
    except MessagingError as err:
        raise to_http_exception(err) from err
    return ConversationResponse.model_validate(view)


@router.put("/read/{address}")
async def mark_message_read(
    address: str,
    current_user: CurrentUserDep,
    service: ConversationServiceDep,
) -> MarkReadResponse:
    """Mark one message as read by the current user."""
    try:
        changed = service.mark_message_as_read(address, current_user.id)
    except MessagingError as err:
        raise to_http_exception(err) from err
    return MarkReadResponse(updated_count=int(changed))


@router.put("/conversation/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: str,
    current_user: CurrentUserDep,
    service: ConversationServiceDep,
    payload: MarkAllReadRequest | None = Body(default=None),
) -> MarkReadResponse:
    """Mark all (or the listed) messages of a conversation as read."""
    addresses = payload.addresses if payload is not None else None
    try:
        updated = service.mark_all_as_read(conversation_id, current_user.id, addresses)
    except MessagingError as err:
        raise to_http_exception(err) from err
    return MarkReadResponse(updated_count=updated)


@router.get("/unread/count")
async def get_unread_count(
    current_user: CurrentUserDep,
    service: ConversationServiceDep,
) -> UnreadCountResponse:
    """Return the number of unread messages addressed to the current user."""
    return UnreadCountResponse(count=service.unread_count(current_user.id))


@router.get("/admin/conversations")
async def list_admin_conversations(
    admin: AdminUserDep,
    service: ConversationServiceDep,
    order: Literal["recent", "unread"] = Query("recent"),
) -> list[ConversationSummaryResponse]:
    """List the admin's conversations with previews and unread counts."""
    try:
        summaries = service.list_admin_conversations(admin.id)
    except MessagingError as err:
        raise to_http_exception(err) from err
    if order == "unread":
        summaries = prioritize_unread(summaries)
    return [ConversationSummaryResponse.model_validate(summary) for summary in summaries]
