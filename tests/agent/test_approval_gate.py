"""
Unit tests for the approval gate.

Tests registration, resolution, cancellation and isolation of pending
tool approvals.
"""

import asyncio
import threading

import pytest

from agentdesk.domain.entities import StreamEventKind
from agentdesk.domain.errors import StoreUnavailableError, TurnCancelled
from agentdesk.orchestrator.approval_gate import (
    ApprovalResolution,
    ApprovalService,
    request_key,
)
from agentdesk.orchestrator.cancellation import CancellationToken
from agentdesk.orchestrator.event_streamer import CallbackEventSink, EventStreamer


@pytest.fixture
def events():
    return []


@pytest.fixture
def approvals(events):
    streamer = EventStreamer([CallbackEventSink(events.append)])
    return ApprovalService(emitter=streamer)


async def _wait_pending(approvals, request_id):
    for _ in range(100):
        if approvals.has_pending(request_id):
            return
        await asyncio.sleep(0.001)
    raise AssertionError(f"{request_id} never became pending")


class TestApprovalRequest:
    """Tests for the request/resolve handshake."""

    def test_request_key(self):
        assert request_key("s1", "call_1") == "s1:call_1"

    @pytest.mark.asyncio
    async def test_approved(self, approvals, events):
        token = CancellationToken()
        waiter = asyncio.create_task(
            approvals.request("s1", "call_1", "Shell", {"command": "ls"}, token)
        )
        await _wait_pending(approvals, "s1:call_1")

        assert approvals.resolve("s1:call_1", True) == ApprovalResolution.OK
        assert await waiter is True
        assert not approvals.has_pending("s1:call_1")

    @pytest.mark.asyncio
    async def test_rejected(self, approvals):
        token = CancellationToken()
        waiter = asyncio.create_task(
            approvals.request("s1", "call_1", "WriteFile", {"path": "a"}, token)
        )
        await _wait_pending(approvals, "s1:call_1")

        approvals.resolve("s1:call_1", False)
        assert await waiter is False

    @pytest.mark.asyncio
    async def test_emits_tool_approval_event(self, approvals, events):
        token = CancellationToken()
        waiter = asyncio.create_task(
            approvals.request("s1", "call_1", "Shell", {"command": "ls"}, token)
        )
        await _wait_pending(approvals, "s1:call_1")
        approvals.resolve("s1:call_1", True)
        await waiter

        assert len(events) == 1
        assert events[0].event == StreamEventKind.TOOL_APPROVAL
        assert events[0].data == {
            "session_id": "s1",
            "request_id": "s1:call_1",
            "name": "Shell",
            "args": {"command": "ls"},
        }

    @pytest.mark.asyncio
    async def test_resolve_twice_reports_not_found(self, approvals):
        token = CancellationToken()
        waiter = asyncio.create_task(
            approvals.request("s1", "call_1", "Shell", {}, token)
        )
        await _wait_pending(approvals, "s1:call_1")

        assert approvals.resolve("s1:call_1", True) == ApprovalResolution.OK
        assert approvals.resolve("s1:call_1", False) == ApprovalResolution.NOT_FOUND
        assert await waiter is True

    def test_resolve_unknown_request(self, approvals):
        assert approvals.resolve("nope:nothing", True) == ApprovalResolution.NOT_FOUND

    @pytest.mark.asyncio
    async def test_resolve_from_another_thread(self, approvals):
        token = CancellationToken()
        waiter = asyncio.create_task(
            approvals.request("s1", "call_1", "Shell", {}, token)
        )
        await _wait_pending(approvals, "s1:call_1")

        results = []
        thread = threading.Thread(
            target=lambda: results.append(approvals.resolve("s1:call_1", True))
        )
        thread.start()
        thread.join()

        assert results == [ApprovalResolution.OK]
        assert await asyncio.wait_for(waiter, timeout=1) is True


class TestApprovalCancellation:
    """Tests for cancellation while waiting."""

    @pytest.mark.asyncio
    async def test_cancel_while_waiting(self, approvals):
        """Cancelled wait raises and deregisters; a late decision is not found."""
        token = CancellationToken()
        waiter = asyncio.create_task(
            approvals.request("s1", "call_1", "Shell", {}, token)
        )
        await _wait_pending(approvals, "s1:call_1")

        token.cancel()
        with pytest.raises(TurnCancelled):
            await waiter

        assert not approvals.has_pending("s1:call_1")
        assert approvals.resolve("s1:call_1", True) == ApprovalResolution.NOT_FOUND

    @pytest.mark.asyncio
    async def test_already_cancelled_registers_nothing(self, approvals, events):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(TurnCancelled):
            await approvals.request("s1", "call_1", "Shell", {}, token)

        assert approvals.list_pending() == []
        assert events == []


class TestApprovalIsolation:
    """Tests for concurrent sessions."""

    @pytest.mark.asyncio
    async def test_sessions_resolve_independently(self, approvals):
        token_a, token_b = CancellationToken(), CancellationToken()
        waiter_a = asyncio.create_task(approvals.request("a", "call_1", "Shell", {}, token_a))
        waiter_b = asyncio.create_task(approvals.request("b", "call_1", "Shell", {}, token_b))
        await _wait_pending(approvals, "a:call_1")
        await _wait_pending(approvals, "b:call_1")

        assert [p.request_id for p in approvals.list_pending("a")] == ["a:call_1"]

        approvals.resolve("b:call_1", False)
        assert await waiter_b is False
        assert not waiter_a.done()

        token_a.cancel()
        with pytest.raises(TurnCancelled):
            await waiter_a


class TestApprovalLock:
    """Tests for an unavailable registry lock."""

    def test_held_lock_raises_store_unavailable(self):
        approvals = ApprovalService(lock_timeout=0.01)
        approvals._lock.acquire()
        try:
            with pytest.raises(StoreUnavailableError):
                approvals.resolve("s1:call_1", True)
        finally:
            approvals._lock.release()
