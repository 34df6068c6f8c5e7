"""
Unit tests for the chat service and live turn registry.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentdesk.config import Settings
from agentdesk.domain.entities import ModelResponse, StreamEventKind, TokenUsage, TurnStatus
from agentdesk.domain.errors import StoreUnavailableError
from agentdesk.domain.ports import IModelProvider, IToolBackend
from agentdesk.orchestrator import (
    AgentOrchestrator,
    ApprovalService,
    CallbackEventSink,
    ChatService,
    EventStreamer,
    ToolDispatcher,
    TurnRegistry,
)
from agentdesk.orchestrator.cancellation import CancellationToken
from agentdesk.sessions import SessionStore
from agentdesk.tools import ToolCatalog


@pytest.fixture
def events():
    return []


@pytest.fixture
def provider():
    provider = AsyncMock(spec=IModelProvider)
    provider.complete.return_value = ModelResponse(content="Hi there!", usage=TokenUsage())
    return provider


@pytest.fixture
def store(tmp_path):
    return SessionStore(share_dir=tmp_path / "share")


@pytest.fixture
def service(provider, store, events, tmp_path):
    emitter = EventStreamer([CallbackEventSink(events.append)])
    catalog = ToolCatalog()
    orchestrator = AgentOrchestrator(
        provider=provider,
        catalog=catalog,
        dispatcher=ToolDispatcher(catalog, MagicMock(spec=IToolBackend)),
        approvals=ApprovalService(emitter=emitter),
        emitter=emitter,
    )
    settings = Settings(work_dir=str(tmp_path), share_dir=tmp_path / "share")
    return ChatService(orchestrator, store, settings)


class TestChatStream:
    """Tests for running turns through the service."""

    @pytest.mark.asyncio
    async def test_persists_user_and_answer(self, service, store):
        outcome = await service.chat_stream("s1", "Hello agent")

        assert outcome.status == TurnStatus.DONE
        session = store.get("s1")
        assert session.title == "Hello agent"
        assert [(m.role, m.content) for m in session.messages] == [
            ("user", "Hello agent"),
            ("assistant", "Hi there!"),
        ]

    @pytest.mark.asyncio
    async def test_long_message_title(self, service, store):
        await service.chat_stream("s1", "word " * 30)
        assert len(store.get("s1").title) == 50

    @pytest.mark.asyncio
    async def test_overrides_reach_turn(self, service, provider, tmp_path):
        other = tmp_path / "other"
        other.mkdir()

        await service.chat_stream("s1", "hi", model="kimi-k2", work_dir=str(other))

        model, messages, _ = provider.complete.await_args.args
        assert model == "kimi-k2"
        assert str(other) in messages[0]["content"]

    @pytest.mark.asyncio
    async def test_turn_unregistered_afterwards(self, service):
        await service.chat_stream("s1", "hi")
        assert service.turns.active_sessions() == []

    @pytest.mark.asyncio
    async def test_cancel_running_turn(self, service, provider, store, events):
        started = asyncio.Event()

        async def slow(model, messages, tools):
            started.set()
            await asyncio.sleep(10)

        provider.complete.side_effect = slow

        turn = asyncio.create_task(service.chat_stream("s1", "take your time"))
        await asyncio.wait_for(started.wait(), timeout=1)

        assert service.cancel("s1") is True
        outcome = await asyncio.wait_for(turn, timeout=1)

        assert outcome.status == TurnStatus.CANCELLED
        assert [e.event for e in events] == [StreamEventKind.CANCELLED]
        assert [m.role for m in store.get("s1").messages] == ["user"]

    def test_cancel_idle_session(self, service):
        assert service.cancel("nobody") is False

    @pytest.mark.asyncio
    async def test_store_unavailable_emits_error(self, service, provider, store, events):
        store.get_or_create = MagicMock(
            side_effect=StoreUnavailableError("Session store is unavailable")
        )

        outcome = await service.chat_stream("s1", "hi")

        assert outcome.status == TurnStatus.ERROR
        assert [e.event for e in events] == [StreamEventKind.ERROR]
        provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_turn_registry_unavailable_emits_error(self, service, provider, events):
        service.turns.register = MagicMock(
            side_effect=StoreUnavailableError("Turn registry is unavailable", store="turns")
        )

        outcome = await service.chat_stream("s1", "hi")

        assert outcome.status == TurnStatus.ERROR
        assert outcome.error == "Turn registry is unavailable"
        assert [e.event for e in events] == [StreamEventKind.ERROR]
        provider.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_session_id_emits_error(self, service, provider, events, tmp_path):
        outcome = await service.chat_stream("../escape", "hi")

        assert outcome.status == TurnStatus.ERROR
        assert [e.event for e in events] == [StreamEventKind.ERROR]
        assert not (tmp_path / "share" / "escape.json").exists()
        provider.complete.assert_not_called()


class TestDeleteSession:
    """Tests for removing a session through the service."""

    @pytest.mark.asyncio
    async def test_delete_forgets_event_sequence(self, service, store, tmp_path):
        await service.chat_stream("s1", "hi")
        emitter = service.orchestrator.emitter
        assert emitter.sequence("s1") > 0

        service.delete_session(str(tmp_path), "s1")

        assert emitter.sequence("s1") == 0
        assert store.get("s1") is None
        assert "s1" not in emitter._sequences

class TestTurnRegistry:
    """Tests for the live turn map."""

    def test_new_turn_cancels_previous(self):
        registry = TurnRegistry()
        first, second = CancellationToken(), CancellationToken()

        registry.register("s1", first)
        registry.register("s1", second)

        assert first.is_cancelled is True
        assert second.is_cancelled is False

    def test_unregister_ignores_stale_token(self):
        registry = TurnRegistry()
        first, second = CancellationToken(), CancellationToken()
        registry.register("s1", first)
        registry.register("s1", second)

        registry.unregister("s1", first)

        assert registry.active_sessions() == ["s1"]

    def test_cancel_all(self):
        registry = TurnRegistry()
        tokens = [CancellationToken() for _ in range(3)]
        for index, token in enumerate(tokens):
            registry.register(f"s{index}", token)

        assert registry.cancel_all() == 3
        assert registry.cancel_all() == 0
        assert all(t.is_cancelled for t in tokens)
