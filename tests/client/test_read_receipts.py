"""Tests for the client-side read-confirmation session."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from haven_messaging.client.read_receipts import ReadReceiptConfig, ReadReceiptSession
from haven_messaging.schemas.message import MessageResponse
from haven_messaging.services.addressing import encode_address
from haven_messaging.services.errors import NetworkError

VIEWER = "aaaaaaaaaaaaaaaaaaaaaaaa"
ADMIN = "bbbbbbbbbbbbbbbbbbbbbbbb"
CONV_A = "cccccccccccccccccccccccc"
CONV_B = "dddddddddddddddddddddddd"

DWELL = 0.08
FAST = ReadReceiptConfig(
    visibility_threshold=0.5,
    dwell_seconds=DWELL,
    flush_interval_seconds=0.05,
    max_retries=3,
)


def _message(conversation_id, index, *, sender=ADMIN, recipient=VIEWER, read=False):
    return MessageResponse(
        address=encode_address(conversation_id, index),
        conversation_id=conversation_id,
        sender=sender,
        recipient=recipient,
        content=f"message {index}",
        read_by_sender=True,
        read_by_recipient=read,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.mark_conversation_read.return_value = 1
    return mock


@pytest.fixture
def session(transport):
    return ReadReceiptSession(VIEWER, transport, FAST)


def test_only_unread_incoming_messages_are_observed(session) -> None:
    incoming = _message(CONV_A, 0)
    already_read = _message(CONV_A, 1, read=True)
    outgoing = _message(CONV_A, 2, sender=VIEWER, recipient=ADMIN)

    session.replace_messages([incoming, already_read, outgoing])

    assert session.is_observed(incoming.address)
    assert not session.is_observed(already_read.address)
    assert not session.is_observed(outgoing.address)


@pytest.mark.asyncio
async def test_dwell_marks_message_locally_and_queues_it(session) -> None:
    seen = []
    session._on_local_read = seen.append
    message = _message(CONV_A, 0)
    session.replace_messages([message])

    session.on_visibility_change(message.address, 0.9)
    await asyncio.sleep(DWELL * 2)

    assert session.messages[0].read_by_recipient is True
    assert session.pending_addresses == [message.address]
    assert not session.is_observed(message.address)
    assert [m.address for m in seen] == [message.address]


@pytest.mark.asyncio
async def test_leaving_viewport_before_dwell_cancels(session) -> None:
    message = _message(CONV_A, 0)
    session.replace_messages([message])

    session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 0.75)
    session.on_visibility_change(message.address, 0.1)
    await asyncio.sleep(DWELL)

    assert session.pending_addresses == []
    assert session.active_timers == 0
    assert session.messages[0].read_by_recipient is False
    assert session.is_observed(message.address)


@pytest.mark.asyncio
async def test_below_threshold_never_starts_timer(session) -> None:
    message = _message(CONV_A, 0)
    session.replace_messages([message])

    session.on_visibility_change(message.address, 0.49)

    assert session.active_timers == 0


@pytest.mark.asyncio
async def test_flush_sends_one_call_per_conversation(session, transport) -> None:
    messages = [_message(CONV_A, 0), _message(CONV_A, 1), _message(CONV_B, 0)]
    session.replace_messages(messages)
    for message in messages:
        session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 2)

    confirmed = await session.flush()

    assert confirmed == 3
    assert transport.mark_conversation_read.await_count == 2
    calls = {
        call.args[0]: sorted(call.args[1])
        for call in transport.mark_conversation_read.await_args_list
    }
    assert calls == {
        CONV_A: sorted([messages[0].address, messages[1].address]),
        CONV_B: [messages[2].address],
    }
    assert session.pending_addresses == []


@pytest.mark.asyncio
async def test_flush_with_nothing_pending_is_noop(session, transport) -> None:
    assert await session.flush() == 0
    transport.mark_conversation_read.assert_not_awaited()


@pytest.mark.asyncio
async def test_overlapping_flush_is_skipped(session, transport) -> None:
    release = asyncio.Event()

    async def slow_mark(conversation_id, addresses=None):
        await release.wait()
        return len(addresses or [])

    transport.mark_conversation_read.side_effect = slow_mark
    message = _message(CONV_A, 0)
    session.replace_messages([message])
    session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 2)

    first = asyncio.create_task(session.flush())
    await asyncio.sleep(0)
    session._pending[encode_address(CONV_A, 5)] = 0

    assert await session.flush() == 0
    release.set()
    assert await first == 1
    assert transport.mark_conversation_read.await_count == 1
    assert session.pending_addresses == [encode_address(CONV_A, 5)]


@pytest.mark.asyncio
async def test_failed_flush_requeues_then_drops(session, transport) -> None:
    transport.mark_conversation_read.side_effect = NetworkError("offline")
    message = _message(CONV_A, 0)
    session.replace_messages([message])
    session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 2)

    await session.flush()
    assert session.pending_addresses == [message.address]
    await session.flush()
    assert session.pending_addresses == [message.address]
    await session.flush()

    assert session.pending_addresses == []
    assert transport.mark_conversation_read.await_count == FAST.max_retries
    # The optimistic local state is kept.
    assert session.messages[0].read_by_recipient is True


@pytest.mark.asyncio
async def test_replace_messages_keeps_running_timers_and_local_reads(session) -> None:
    pending = _message(CONV_A, 0)
    watched = _message(CONV_A, 1)
    session.replace_messages([pending, watched])
    session.on_visibility_change(pending.address, 1.0)
    await asyncio.sleep(DWELL * 2)
    session.on_visibility_change(watched.address, 1.0)

    # A poll returns server state that has not caught up yet.
    session.replace_messages([_message(CONV_A, 0), _message(CONV_A, 1), _message(CONV_A, 2)])

    assert session.active_timers == 1
    assert session.messages[0].read_by_recipient is True
    assert not session.is_observed(pending.address)
    assert session.is_observed(encode_address(CONV_A, 2))

    await asyncio.sleep(DWELL * 2)
    assert sorted(session.pending_addresses) == sorted([pending.address, watched.address])


@pytest.mark.asyncio
async def test_replace_messages_cancels_timers_of_vanished_messages(session) -> None:
    message = _message(CONV_A, 0)
    session.replace_messages([message])
    session.on_visibility_change(message.address, 1.0)

    session.replace_messages([])
    await asyncio.sleep(DWELL * 2)

    assert session.active_timers == 0
    assert session.pending_addresses == []


@pytest.mark.asyncio
async def test_mark_all_read_clears_local_state(session, transport) -> None:
    transport.mark_conversation_read.return_value = 2
    messages = [_message(CONV_A, 0), _message(CONV_A, 1), _message(CONV_B, 0)]
    session.replace_messages(messages)
    session.on_visibility_change(messages[0].address, 1.0)
    session.on_visibility_change(messages[1].address, 1.0)
    await asyncio.sleep(DWELL * 2)

    assert await session.mark_all_read(CONV_A) == 2

    transport.mark_conversation_read.assert_awaited_once_with(CONV_A)
    assert session.pending_addresses == []
    assert [m.read_by_recipient for m in session.messages] == [True, True, False]
    assert session.is_observed(messages[2].address)


@pytest.mark.asyncio
async def test_periodic_loop_flushes(session, transport) -> None:
    message = _message(CONV_A, 0)
    session.replace_messages([message])
    await session.start()
    session.on_visibility_change(message.address, 1.0)

    await asyncio.sleep(DWELL + FAST.flush_interval_seconds * 3)
    await session.close(flush_pending=False)

    transport.mark_conversation_read.assert_awaited_once_with(CONV_A, [message.address])


@pytest.mark.asyncio
async def test_close_cancels_timers_and_flushes_queue(session, transport) -> None:
    queued = _message(CONV_A, 0)
    watched = _message(CONV_A, 1)
    session.replace_messages([queued, watched])
    session.on_visibility_change(queued.address, 1.0)
    await asyncio.sleep(DWELL * 2)
    session.on_visibility_change(watched.address, 1.0)

    await session.close()
    await asyncio.sleep(DWELL * 2)

    assert session.closed
    assert session.active_timers == 0
    assert not session.is_observed(watched.address)
    transport.mark_conversation_read.assert_awaited_once_with(CONV_A, [queued.address])
    assert session.pending_addresses == []

    # Events after close are ignored.
    session.on_visibility_change(watched.address, 1.0)
    assert session.active_timers == 0


@pytest.mark.asyncio
async def test_start_after_close_fails(session) -> None:
    await session.close()
    with pytest.raises(RuntimeError):
        await session.start()


def test_config_from_settings() -> None:
    config = ReadReceiptConfig.from_settings()
    assert config.visibility_threshold == 0.5
    assert config.dwell_seconds == 2.0
    assert config.max_retries == 3


@pytest.mark.asyncio
async def test_unexpected_transport_error_requeues_every_conversation(session, transport) -> None:
    transport.mark_conversation_read.side_effect = KeyError("updated_count")
    messages = [_message(CONV_A, 0), _message(CONV_B, 0)]
    session.replace_messages(messages)
    for message in messages:
        session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 2)

    assert await session.flush() == 0

    assert transport.mark_conversation_read.await_count == 2
    assert sorted(session.pending_addresses) == sorted(m.address for m in messages)


@pytest.mark.asyncio
async def test_close_waits_for_running_flush_and_sends_later_reads(session, transport) -> None:
    release = asyncio.Event()
    sent = []

    async def mark(conversation_id, addresses=None):
        sent.append((conversation_id, list(addresses or [])))
        if len(sent) == 1:
            await release.wait()
        return len(addresses or [])

    transport.mark_conversation_read.side_effect = mark
    first, second = _message(CONV_A, 0), _message(CONV_A, 1)
    session.replace_messages([first, second])
    session.on_visibility_change(first.address, 1.0)
    await asyncio.sleep(DWELL * 2)

    running = asyncio.create_task(session.flush())
    await asyncio.sleep(0)
    session.on_visibility_change(second.address, 1.0)
    await asyncio.sleep(DWELL * 2)
    assert session.pending_addresses == [second.address]

    closing = asyncio.create_task(session.close())
    await asyncio.sleep(0)
    release.set()
    await closing

    assert await running == 1
    assert sent == [(CONV_A, [first.address]), (CONV_A, [second.address])]
    assert session.pending_addresses == []


@pytest.mark.asyncio
async def test_dropped_receipt_lets_refetch_observe_message_again(session, transport) -> None:
    transport.mark_conversation_read.side_effect = NetworkError("offline")
    message = _message(CONV_A, 0)
    session.replace_messages([message])
    session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 2)
    for _ in range(FAST.max_retries):
        await session.flush()
    assert session.pending_addresses == []

    session.replace_messages([_message(CONV_A, 0)])

    assert session.messages[0].read_by_recipient is False
    assert session.is_observed(message.address)


@pytest.mark.asyncio
async def test_accepted_receipt_survives_stale_refetch(session) -> None:
    message = _message(CONV_A, 0)
    session.replace_messages([message])
    session.on_visibility_change(message.address, 1.0)
    await asyncio.sleep(DWELL * 2)
    assert await session.flush() == 1

    session.replace_messages([_message(CONV_A, 0)])

    assert session.messages[0].read_by_recipient is True
    assert not session.is_observed(message.address)


@pytest.mark.asyncio
async def test_local_reads_leave_fetched_objects_untouched(session, transport) -> None:
    dwelled = _message(CONV_A, 0)
    explicit = _message(CONV_B, 0)
    session.replace_messages([dwelled, explicit])
    session.on_visibility_change(dwelled.address, 1.0)
    await asyncio.sleep(DWELL * 2)
    await session.mark_all_read(CONV_B)

    assert dwelled.read_by_recipient is False
    assert explicit.read_by_recipient is False
    assert [m.read_by_recipient for m in session.messages] == [True, True]
