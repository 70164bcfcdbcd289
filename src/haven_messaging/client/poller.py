"""Periodic conversation refresh for clients without a push channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from haven_messaging.client.read_receipts import ReadReceiptSession
from haven_messaging.client.transport import MessagingClient
from haven_messaging.core.settings import settings
from haven_messaging.schemas.message import ConversationResponse
from haven_messaging.services.errors import NetworkError

# Configure logger for this module
logger = logging.getLogger(__name__)


class ConversationPoller:
    """Re-fetches one conversation at a fixed cadence.

    Each fetched list replaces the session's messages wholesale; the session
    matches by address so in-flight dwell timers survive the refresh.
    """

    def __init__(
        self,
        client: MessagingClient,
        session: ReadReceiptSession,
        user_id: str,
        interval_seconds: float | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            client: HTTP client acting for the viewer.
            session: Read-confirmation session of the open conversation view.
            user_id: Path argument of ``GET /conversation/{user_id}``.
            interval_seconds: Poll cadence; defaults to the configured value.
        """
        self.client = client
        self.session = session
        self.user_id = user_id
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.conversation_poll_interval_seconds
        )
        self.conversation_id: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def poll_once(self) -> ConversationResponse | None:
        """Fetch the conversation and hand it to the session."""
        try:
            conversation = await self.client.get_conversation(self.user_id)
        except NetworkError as e:
            logger.warning("Conversation poll failed: %s", e)
            return None
        self.conversation_id = conversation.conversation_id
        self.session.replace_messages(conversation.messages)
        return conversation

    async def start(self) -> None:
        """Fetch immediately, then keep polling in the background."""
        await self.poll_once()
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        interval = max(0.01, float(self.interval_seconds))
        while not self._stopping.is_set():
            await asyncio.sleep(interval)
            if self.session.closed:
                return
            await self.poll_once()

    async def stop(self) -> None:
        """Stop the background polling loop."""
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
