"""Visibility-driven, batched read confirmation.

Without a push channel the client decides on its own when a displayed
message counts as read:

- Unread messages addressed to the viewer are observed.
- Once a message is visible past the threshold, a dwell timer starts; it is
  cancelled if the message leaves the viewport first.
- When the timer fires the local copy flips to read immediately and its
  address is queued.
- A periodic flush sends one request per conversation for everything
  queued since the last flush.

A failed flush keeps the optimistic local state and re-queues the addresses
until ``max_retries`` attempts have failed, after which they are dropped and
the next full fetch reconciles.

All state lives on a :class:`ReadReceiptSession` owned by one conversation
view; :meth:`ReadReceiptSession.close` releases every timer and observer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from haven_messaging.core.settings import Settings, settings
from haven_messaging.schemas.message import MessageResponse
from haven_messaging.services.addressing import decode_index_address
from haven_messaging.services.errors import InvalidAddressError, NetworkError

# Configure logger for this module
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadReceiptConfig:
    """Timing knobs of the read-confirmation protocol."""

    visibility_threshold: float = 0.5
    dwell_seconds: float = 2.0
    flush_interval_seconds: float = 2.0
    max_retries: int = 3

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> ReadReceiptConfig:
        """Build a config from application settings."""
        source = source or settings
        return cls(
            visibility_threshold=source.read_visibility_threshold,
            dwell_seconds=source.read_dwell_seconds,
            flush_interval_seconds=source.read_flush_interval_seconds,
            max_retries=source.read_flush_max_retries,
        )


class ReadTransport(Protocol):
    """What the session needs from the network layer."""

    async def mark_conversation_read(
        self, conversation_id: str, addresses: list[str] | None = None
    ) -> int: ...


class ReadReceiptSession:
    """Read-confirmation state for one conversation view."""

    def __init__(
        self,
        viewer_id: str,
        transport: ReadTransport,
        config: ReadReceiptConfig | None = None,
        *,
        on_local_read: Callable[[MessageResponse], None] | None = None,
    ) -> None:
        """Initialize an empty session.

        Args:
            viewer_id: User whose reads are being tracked.
            transport: Object performing the batched mark-read call.
            config: Timing configuration; defaults to application settings.
            on_local_read: Called whenever a local copy flips to read.
        """
        self.viewer_id = viewer_id
        self.transport = transport
        self.config = config or ReadReceiptConfig.from_settings()
        self._on_local_read = on_local_read

        self._messages: dict[str, MessageResponse] = {}
        self._observed: set[str] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        # address -> failed attempts so far
        self._pending: dict[str, int] = {}
        self._sending: set[str] = set()
        # addresses the server has accepted during this session
        self._confirmed: set[str] = set()
        self._in_flight = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def messages(self) -> list[MessageResponse]:
        """Local message copies in display order."""
        return list(self._messages.values())

    @property
    def pending_addresses(self) -> list[str]:
        """Addresses waiting for the next flush."""
        return list(self._pending)

    @property
    def active_timers(self) -> int:
        return len(self._timers)

    @property
    def closed(self) -> bool:
        return self._closed

    def is_observed(self, address: str) -> bool:
        """Return True if visibility events for ``address`` are acted on."""
        return address in self._observed

    # ------------------------------------------------------------------ #
    # Message list
    # ------------------------------------------------------------------ #

    def _needs_receipt(self, message: MessageResponse) -> bool:
        return message.recipient == self.viewer_id and not message.read_by_recipient

    def _cancel_timer(self, address: str) -> None:
        handle = self._timers.pop(address, None)
        if handle is not None:
            handle.cancel()

    def _holds_local_read(self, address: str) -> bool:
        return address in self._pending or address in self._sending or address in self._confirmed

    def replace_messages(self, messages: Iterable[MessageResponse]) -> None:
        """Install a freshly fetched message list.

        Messages are matched by address, so dwell timers of messages still
        present keep running. A local read survives the refresh while its
        receipt is queued, being sent or accepted; once a receipt has been
        dropped the server state wins and the message is observed again.
        """
        if self._closed:
            return

        incoming: dict[str, MessageResponse] = {}
        for message in messages:
            local = self._messages.get(message.address)
            if (
                local is not None
                and local.read_by_recipient
                and not message.read_by_recipient
                and self._holds_local_read(message.address)
            ):
                message = message.model_copy(update={"read_by_recipient": True})
            incoming[message.address] = message

        for address in list(self._timers):
            if address not in incoming or not self._needs_receipt(incoming[address]):
                self._cancel_timer(address)

        self._messages = incoming
        self._observed = {
            address
            for address, message in incoming.items()
            if self._needs_receipt(message) and address not in self._pending
        }
        logger.debug("Observing %d unread messages", len(self._observed))

    # ------------------------------------------------------------------ #
    # Visibility and dwell
    # ------------------------------------------------------------------ #

    def on_visibility_change(self, address: str, visible_fraction: float) -> None:
        """Report how much of a message's element is currently on screen."""
        if self._closed or address not in self._observed:
            return

        if visible_fraction >= self.config.visibility_threshold:
            if address not in self._timers:
                loop = asyncio.get_running_loop()
                self._timers[address] = loop.call_later(
                    self.config.dwell_seconds, self._dwell_elapsed, address
                )
        else:
            self._cancel_timer(address)

    def _dwell_elapsed(self, address: str) -> None:
        self._timers.pop(address, None)
        if self._closed or address not in self._observed:
            return
        message = self._messages.get(address)
        if message is None:
            return

        self._observed.discard(address)
        message = message.model_copy(update={"read_by_recipient": True})
        self._messages[address] = message
        self._pending.setdefault(address, 0)
        logger.debug("Queued read receipt for %s", address)
        if self._on_local_read is not None:
            self._on_local_read(message)

    # ------------------------------------------------------------------ #
    # Flushing
    # ------------------------------------------------------------------ #

    def _requeue(self, addresses: list[str], attempts: dict[str, int]) -> None:
        for address in addresses:
            failures = attempts[address] + 1
            if failures >= self.config.max_retries:
                logger.warning(
                    "Dropping read receipt for %s after %d failed attempts", address, failures
                )
                continue
            self._pending.setdefault(address, failures)

    async def flush(self) -> int:
        """Send queued receipts, one request per conversation.

        Returns the number of addresses the server accepted. A flush that
        starts while another is still in flight does nothing. A failed
        conversation call never affects the other conversations of the batch.
        """
        if self._in_flight or not self._pending:
            return 0

        self._in_flight = True
        self._idle.clear()
        batch = dict(self._pending)
        self._pending.clear()
        self._sending = set(batch)

        by_conversation: dict[str, list[str]] = defaultdict(list)
        for address in batch:
            try:
                conversation_id = decode_index_address(address).conversation_id
            except InvalidAddressError:
                logger.error("Discarding undecodable read receipt %r", address)
                continue
            by_conversation[conversation_id].append(address)

        confirmed = 0
        unsent = dict(by_conversation)
        try:
            for conversation_id, addresses in by_conversation.items():
                try:
                    await self.transport.mark_conversation_read(conversation_id, addresses)
                except NetworkError as err:
                    logger.warning(
                        "Read receipt flush for conversation %s failed: %s", conversation_id, err
                    )
                    del unsent[conversation_id]
                    self._requeue(addresses, batch)
                    continue
                except Exception:
                    logger.exception(
                        "Unexpected error reporting reads for conversation %s", conversation_id
                    )
                    del unsent[conversation_id]
                    self._requeue(addresses, batch)
                    continue
                del unsent[conversation_id]
                self._confirmed.update(addresses)
                confirmed += len(addresses)
                logger.debug(
                    "Reported %d reads for conversation %s", len(addresses), conversation_id
                )
        except asyncio.CancelledError:
            for addresses in unsent.values():
                for address in addresses:
                    self._pending.setdefault(address, batch[address])
            raise
        finally:
            self._sending = set()
            self._in_flight = False
            self._idle.set()
        return confirmed

    async def mark_all_read(self, conversation_id: str) -> int:
        """Mark the whole conversation read right away.

        Errors propagate because this is an explicit user action.
        """
        flipped: list[str] = []
        for address, message in list(self._messages.items()):
            if message.conversation_id != conversation_id or not self._needs_receipt(message):
                continue
            self._cancel_timer(address)
            self._observed.discard(address)
            message = message.model_copy(update={"read_by_recipient": True})
            self._messages[address] = message
            flipped.append(address)
            if self._on_local_read is not None:
                self._on_local_read(message)
        for address in list(self._pending):
            if decode_index_address(address).conversation_id == conversation_id:
                del self._pending[address]
                flipped.append(address)
        updated = await self.transport.mark_conversation_read(conversation_id)
        self._confirmed.update(flipped)
        return updated

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Start the periodic flush loop."""
        if self._closed:
            raise RuntimeError("Session is closed")
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        interval = max(0.01, float(self.config.flush_interval_seconds))

        while not self._stopping.is_set():
            await asyncio.sleep(interval)
            try:
                await self.flush()
            except (ValueError, TypeError, KeyError) as e:
                logger.error("Read receipt flush encountered data error: %s", e, exc_info=True)

    async def close(self, *, flush_pending: bool = True) -> None:
        """Cancel every timer and observer and stop the flush loop.

        A flush already in flight is awaited first. Receipts still queued
        carry their own conversation id, so they are sent once more when
        ``flush_pending`` is set; whatever fails then is discarded.
        """
        if self._closed:
            return
        self._closed = True
        for address in list(self._timers):
            self._cancel_timer(address)
        self._observed.clear()

        if self._task is not None:
            self._stopping.set()
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        await self._idle.wait()
        if flush_pending and self._pending:
            await self.flush()
        if self._pending:
            logger.warning("Discarding %d unsent read receipts on close", len(self._pending))
        self._pending.clear()
