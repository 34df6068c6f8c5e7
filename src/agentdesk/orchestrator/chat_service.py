"""
Chat Service.

Glue between the observer surface and the orchestrator:
- Tracks the live turn of each session and its cancellation token
- Persists the user message before a turn and the answer after it
- Routes approval decisions and cancel requests
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from ..config import Settings
from ..domain.entities import Message, MessageRole, StreamEventKind, TurnOutcome, TurnStatus
from ..domain.errors import ArgumentError, StoreUnavailableError
from ..sessions.store import SessionStore
from ..sessions.transcript import TITLE_MAX_CHARS, truncate_with_ellipsis
from .agent import AgentOrchestrator
from .approval_gate import ApprovalResolution
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


class TurnRegistry:
    """Live turns keyed by session id.

    Holds one cancellation token per running session. The lock covers
    only insert, remove and lookup.
    """

    def __init__(self, lock_timeout: float = 5.0):
        self.lock_timeout = lock_timeout
        self._turns: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise StoreUnavailableError("Turn registry is unavailable", store="turns")
        try:
            yield
        finally:
            self._lock.release()

    def register(self, session_id: str, token: CancellationToken) -> None:
        """Track a new turn, cancelling any turn still running for the session."""
        with self._locked():
            previous = self._turns.get(session_id)
            self._turns[session_id] = token
        if previous is not None and previous is not token:
            logger.info(f"Cancelling previous turn for session {session_id}")
            previous.cancel()

    def unregister(self, session_id: str, token: CancellationToken) -> None:
        with self._locked():
            if self._turns.get(session_id) is token:
                del self._turns[session_id]

    def cancel(self, session_id: str) -> bool:
        """Cancel one session's turn. Returns False if none is running."""
        with self._locked():
            token = self._turns.get(session_id)
        if token is None:
            return False
        token.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every live turn. Returns how many were signalled."""
        with self._locked():
            tokens = list(self._turns.values())
        return sum(1 for token in tokens if token.cancel())

    def active_sessions(self) -> list[str]:
        with self._locked():
            return list(self._turns)


class ChatService:
    """Runs turns for the observer surface.

    Usage:
        service = ChatService(orchestrator, store, settings)

        outcome = await service.chat_stream("s1", "Summarize README.md")
        service.cancel("s1")
        service.resolve_approval("s1:call_1", approved=True)
    """

    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        store: SessionStore,
        settings: Settings,
        turns: Optional[TurnRegistry] = None,
    ):
        """Initialize the chat service.

        Args:
            orchestrator: Turn runner
            store: Session persistence
            settings: Defaults for model, working directory and approval
            turns: Live turn registry
        """
        self.orchestrator = orchestrator
        self.store = store
        self.settings = settings
        self.turns = turns or TurnRegistry()

    async def chat_stream(
        self,
        session_id: str,
        message: str,
        model: Optional[str] = None,
        work_dir: Optional[str] = None,
        config_file: Optional[str] = None,
        yolo: Optional[bool] = None,
    ) -> TurnOutcome:
        """Run one turn for a session, streaming events through the emitter.

        Args:
            session_id: Session to run in (created on first use)
            message: User text
            model: Model override
            work_dir: Working directory override
            config_file: Config file override
            yolo: Auto-approve override

        Returns:
            The turn outcome
        """
        settings = self.settings.with_overrides(
            model=model, work_dir=work_dir, config_file=config_file, yolo=yolo
        )

        token = CancellationToken()
        try:
            self.store.get_or_create(
                session_id,
                truncate_with_ellipsis(message, TITLE_MAX_CHARS),
                settings.work_dir,
            )
            self.store.add_message(
                session_id, Message(role=MessageRole.USER.value, content=message)
            )
            self.turns.register(session_id, token)
        except (StoreUnavailableError, ArgumentError) as e:
            logger.error(f"Cannot start turn for session {session_id}: {e}")
            self.orchestrator.emitter.emit(
                StreamEventKind.ERROR, session_id, message=e.message
            )
            return TurnOutcome(status=TurnStatus.ERROR, session_id=session_id, error=e.message)

        try:
            outcome = await self.orchestrator.run_turn(
                session_id=session_id,
                user_message=message,
                model=settings.model,
                work_dir=settings.work_dir,
                auto_approve=settings.yolo,
                cancel=token,
                config_path=settings.config_file,
            )
        finally:
            self.turns.unregister(session_id, token)

        self._record_outcome(outcome)
        return outcome

    def cancel(self, session_id: str) -> bool:
        """Cancel the live turn of one session."""
        cancelled = self.turns.cancel(session_id)
        logger.info(f"Cancel requested for session {session_id}: {cancelled}")
        return cancelled

    def cancel_all(self) -> int:
        """Cancel every live turn."""
        count = self.turns.cancel_all()
        logger.info(f"Cancelled {count} live turn(s)")
        return count

    def resolve_approval(self, request_id: str, approved: bool) -> ApprovalResolution:
        return self.orchestrator.approvals.resolve(request_id, approved)

    def delete_session(self, work_dir: str, session_id: str) -> None:
        """Remove a session and drop its event sequence counter.

        Raises:
            ArgumentError: ``session_id`` is not a plain path component
            StoreUnavailableError: The session could not be removed
        """
        self.store.delete(work_dir, session_id)
        self.orchestrator.emitter.reset(session_id)

    def _record_outcome(self, outcome: TurnOutcome) -> None:
        try:
            if outcome.status == TurnStatus.DONE and outcome.content:
                self.store.add_message(
                    outcome.session_id,
                    Message(
                        role=MessageRole.ASSISTANT.value,
                        content=outcome.content,
                        tool_calls=outcome.tool_calls or None,
                    ),
                )
            else:
                self.store.touch(outcome.session_id)
        except StoreUnavailableError as e:
            logger.error(f"Failed to persist turn for session {outcome.session_id}: {e}")
