"""
Approval Gate.

Suspends a gated tool call until the observer approves or rejects it.
Pending decisions live in a single registry keyed by
``session_id:tool_call_id`` and shared by every running turn:
- Insert/remove happen under a lock that is never held across an await
- Each decision slot resolves exactly once (decision or cancellation)
- Unknown or already-resolved keys are reported as not found

This module owns the registry so callers never touch the lock directly.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from ..domain.entities import StreamEventKind, now_ts
from ..domain.errors import StoreUnavailableError
from .cancellation import CancellationToken
from .event_streamer import EventStreamer

logger = logging.getLogger(__name__)


class ApprovalResolution(str, Enum):
    """Answer to an inbound decision."""

    OK = "ok"
    NOT_FOUND = "not_found"


@dataclass
class PendingApproval:
    """A registered decision slot.

    Attributes:
        request_id: ``session_id:tool_call_id``
        session_id: Owning session
        tool_call_id: Tool call waiting on the decision
        name: Tool name
        args: Tool arguments, as shown to the observer
        future: Single-shot slot resolved with the decision
    """

    request_id: str
    session_id: str
    tool_call_id: str
    name: str
    args: dict[str, Any]
    future: asyncio.Future
    created_at: int = field(default_factory=now_ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "session_id": self.session_id,
            "tool_call_id": self.tool_call_id,
            "name": self.name,
            "args": self.args,
            "created_at": self.created_at,
        }


def request_key(session_id: str, tool_call_id: str) -> str:
    """Build the request id an observer uses to resolve a decision."""
    return f"{session_id}:{tool_call_id}"


def _set_decision(future: asyncio.Future, approved: bool) -> None:
    if not future.done():
        future.set_result(approved)


class ApprovalService:
    """Registry of pending tool approvals.

    Usage:
        approvals = ApprovalService(emitter=streamer)

        # In the turn (suspends until decided or cancelled)
        approved = await approvals.request(
            session_id="s1",
            tool_call_id="call_1",
            name="Shell",
            args={"command": "ls"},
            cancel=token,
        )

        # From the observer
        approvals.resolve("s1:call_1", approved=True)
    """

    def __init__(
        self,
        emitter: Optional[EventStreamer] = None,
        lock_timeout: float = 5.0,
    ):
        """Initialize the approval service.

        Args:
            emitter: Event streamer used for ``tool_approval`` events
            lock_timeout: Seconds to wait for the registry lock before failing
        """
        self.emitter = emitter
        self.lock_timeout = lock_timeout
        self._pending: dict[str, PendingApproval] = {}
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise StoreUnavailableError(
                "Approval registry is unavailable", store="approvals"
            )
        try:
            yield
        finally:
            self._lock.release()

    async def request(
        self,
        session_id: str,
        tool_call_id: str,
        name: str,
        args: dict[str, Any],
        cancel: CancellationToken,
        emitter: Optional[EventStreamer] = None,
    ) -> bool:
        """Ask the observer to approve a tool call.

        Args:
            session_id: Owning session
            tool_call_id: Tool call to approve
            name: Tool name
            args: Tool arguments
            cancel: Turn cancellation token
            emitter: Overrides the service's emitter for this request

        Returns:
            True if approved, False if rejected

        Raises:
            TurnCancelled: The turn was cancelled while waiting
            StoreUnavailableError: The registry lock could not be taken
        """
        cancel.raise_if_cancelled()

        request_id = request_key(session_id, tool_call_id)
        future = asyncio.get_running_loop().create_future()
        pending = PendingApproval(
            request_id=request_id,
            session_id=session_id,
            tool_call_id=tool_call_id,
            name=name,
            args=args,
            future=future,
        )

        with self._locked():
            replaced = self._pending.get(request_id)
            self._pending[request_id] = pending
        if replaced is not None:
            logger.warning(f"Replacing stale approval request {request_id}")
            replaced.future.cancel()

        try:
            streamer = emitter or self.emitter
            if streamer is not None:
                streamer.emit(
                    StreamEventKind.TOOL_APPROVAL,
                    session_id,
                    request_id=request_id,
                    name=name,
                    args=args,
                )
            logger.info(f"Waiting for approval of {name} ({request_id})")
            approved = await cancel.race(future)
        finally:
            self._discard(request_id, pending)

        logger.info(f"Approval {request_id}: {'approved' if approved else 'rejected'}")
        return bool(approved)

    def resolve(self, request_id: str, approved: bool) -> ApprovalResolution:
        """Deliver a decision for a pending request.

        Safe to call from any thread. A decision for an unknown or
        already-resolved request is reported as NOT_FOUND.

        Raises:
            StoreUnavailableError: The registry lock could not be taken
        """
        with self._locked():
            pending = self._pending.pop(request_id, None)

        if pending is None or pending.future.done():
            logger.debug(f"Approval request not found: {request_id}")
            return ApprovalResolution.NOT_FOUND

        loop = pending.future.get_loop()
        if loop.is_closed():
            return ApprovalResolution.NOT_FOUND
        loop.call_soon_threadsafe(_set_decision, pending.future, approved)
        return ApprovalResolution.OK

    def list_pending(self, session_id: Optional[str] = None) -> list[PendingApproval]:
        """List pending requests, optionally for one session."""
        with self._locked():
            entries = list(self._pending.values())
        if session_id is None:
            return entries
        return [p for p in entries if p.session_id == session_id]

    def has_pending(self, request_id: str) -> bool:
        with self._locked():
            return request_id in self._pending

    def _discard(self, request_id: str, pending: PendingApproval) -> None:
        with self._locked():
            if self._pending.get(request_id) is pending:
                del self._pending[request_id]
