"""
Event Streamer for StreamEvent creation and delivery.

Manages per-session sequence numbers, checks that each event carries the
payload fields its kind requires, and hands it to every subscribed sink.
Delivery is best-effort and non-blocking: a failing or detached sink is
logged and skipped, never surfaced to the orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from ..domain.entities import REQUIRED_EVENT_FIELDS, StreamEvent, StreamEventKind
from ..domain.ports import IEventSink

logger = logging.getLogger(__name__)


class QueueEventSink(IEventSink):
    """Puts events on an asyncio.Queue without waiting.

    Args:
        queue: Destination queue (typically drained by a WebSocket writer)
        session_id: When set, only events of this session are delivered
    """

    def __init__(self, queue: asyncio.Queue, session_id: Optional[str] = None):
        self.queue = queue
        self.session_id = session_id

    def deliver(self, event: StreamEvent) -> None:
        if self.session_id is not None and event.session_id != self.session_id:
            return
        self.queue.put_nowait(event)


class CallbackEventSink(IEventSink):
    """Calls a plain function for every event."""

    def __init__(
        self,
        callback: Callable[[StreamEvent], Any],
        session_id: Optional[str] = None,
    ):
        self.callback = callback
        self.session_id = session_id

    def deliver(self, event: StreamEvent) -> None:
        if self.session_id is not None and event.session_id != self.session_id:
            return
        self.callback(event)


class EventStreamer:
    """Creates and fans out StreamEvents.

    Handles:
    - Per-session auto-incrementing sequence numbers
    - Required payload field checks per event kind
    - Best-effort delivery to subscribed sinks

    Usage:
        streamer = EventStreamer()
        streamer.subscribe(QueueEventSink(queue, session_id="s1"))

        streamer.emit(StreamEventKind.CHUNK, "s1", content="Hello")
        # sequence = 1 for session s1
    """

    def __init__(self, sinks: Optional[list[IEventSink]] = None):
        """Initialize the event streamer.

        Args:
            sinks: Initial sinks to deliver to
        """
        self._sinks: list[IEventSink] = list(sinks or [])
        self._sequences: dict[str, int] = {}
        self._lock = threading.Lock()

    def subscribe(self, sink: IEventSink) -> IEventSink:
        """Add a sink. Returns it so callers can unsubscribe later."""
        with self._lock:
            self._sinks.append(sink)
        return sink

    def unsubscribe(self, sink: IEventSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def create_event(
        self,
        kind: StreamEventKind,
        session_id: str,
        **fields: Any,
    ) -> StreamEvent:
        """Create a StreamEvent with the next sequence number for its session.

        Raises:
            ValueError: If a required payload field is missing
        """
        data = {"session_id": session_id, **fields}
        missing = [f for f in REQUIRED_EVENT_FIELDS[kind] if f not in data]
        if missing:
            raise ValueError(f"{kind.value} event missing fields: {', '.join(missing)}")

        with self._lock:
            sequence = self._sequences.get(session_id, 0) + 1
            self._sequences[session_id] = sequence

        return StreamEvent(event=kind, data=data, sequence=sequence)

    def emit(self, kind: StreamEventKind, session_id: str, **fields: Any) -> StreamEvent:
        """Create an event and deliver it to every sink.

        Returns:
            The emitted event
        """
        event = self.create_event(kind, session_id, **fields)
        self.publish(event)
        return event

    def publish(self, event: StreamEvent) -> None:
        """Deliver an existing event. Sink failures are logged and dropped."""
        with self._lock:
            sinks = list(self._sinks)

        for sink in sinks:
            try:
                sink.deliver(event)
            except Exception as e:
                logger.warning(
                    f"Dropped {event.event.value} event for session "
                    f"{event.session_id}: {e}"
                )

    def reset(self, session_id: str) -> None:
        """Forget a session's sequence counter."""
        with self._lock:
            self._sequences.pop(session_id, None)

    def sequence(self, session_id: str) -> int:
        """Get the last sequence number issued for a session."""
        return self._sequences.get(session_id, 0)
