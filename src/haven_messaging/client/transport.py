"""Async HTTP client for the messaging API.

Every transport or HTTP status failure surfaces as
:class:`~haven_messaging.services.errors.NetworkError` so callers deal with a
single error type.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from haven_messaging.core.settings import settings
from haven_messaging.schemas.message import (
    ConversationResponse,
    ConversationSummaryResponse,
    MessageResponse,
)
from haven_messaging.services.errors import NetworkError

# Configure logger for this module
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/messages"


class MessagingClient:
    """Thin async wrapper over the ``/api/v1/messages`` endpoints."""

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Bearer token of the user the client acts for.
            base_url: Service root; defaults to ``CLIENT_BASE_URL``.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.client_base_url,
            timeout=timeout if timeout is not None else settings.client_http_timeout_seconds,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> MessagingClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as err:
            logger.debug("%s %s failed with status %s", method, path, err.response.status_code)
            raise NetworkError(
                f"Request failed with status {err.response.status_code}"
            ) from err
        except httpx.HTTPError as err:
            raise NetworkError(f"Request failed: {err}") from err
        return response.json()

    async def send_to_admin(self, content: str) -> MessageResponse:
        """Send a message to the admin."""
        data = await self._request("POST", "/to-admin", json={"content": content})
        return MessageResponse.model_validate(data["message"])

    async def send_to_user(self, user_id: str, content: str) -> MessageResponse:
        """Send a message to a user (admin accounts only)."""
        data = await self._request("POST", f"/admin/to-user/{user_id}", json={"content": content})
        return MessageResponse.model_validate(data["message"])

    async def get_conversation(self, user_id: str) -> ConversationResponse:
        """Fetch the decrypted conversation with ``user_id``."""
        data = await self._request("GET", f"/conversation/{user_id}")
        return ConversationResponse.model_validate(data)

    async def mark_message_read(self, address: str) -> int:
        """Mark a single message read; returns the number of flags changed."""
        data = await self._request("PUT", f"/read/{address}")
        return int(data["updated_count"])

    async def mark_conversation_read(
        self, conversation_id: str, addresses: list[str] | None = None
    ) -> int:
        """Mark a conversation (or the listed messages of it) read."""
        body = {"addresses": addresses} if addresses is not None else None
        data = await self._request("PUT", f"/conversation/{conversation_id}/read", json=body)
        return int(data["updated_count"])

    async def unread_count(self) -> int:
        """Return the caller's unread message count."""
        data = await self._request("GET", "/unread/count")
        return int(data["count"])

    async def list_admin_conversations(
        self, order: str = "recent"
    ) -> list[ConversationSummaryResponse]:
        """Return the admin conversation list."""
        data = await self._request("GET", "/admin/conversations", params={"order": order})
        return [ConversationSummaryResponse.model_validate(item) for item in data]
