"""
Agent Orchestrator.

Main orchestration logic for the desktop agent. Coordinates:
- Model rounds under a fixed step budget
- Sequential tool execution through the approval gate and dispatcher
- Cancellation at loop-top, before each tool call, and during every wait
- Event streaming to the observer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..domain.entities import (
    MessageRole,
    ModelResponse,
    StreamEventKind,
    ToolCall,
    ToolResult,
    TurnOutcome,
    TurnStatus,
)
from ..domain.errors import (
    AgentDeskError,
    ApprovalRejected,
    StepBudgetExceeded,
    TurnCancelled,
)
from ..domain.ports import IModelProvider
from ..tools.catalog import ToolCatalog
from .approval_gate import ApprovalService
from .cancellation import CancellationToken
from .event_streamer import EventStreamer
from .prompt_builder import PromptBuilder
from .tool_executor import ToolContext, ToolDispatcher, tool_label

logger = logging.getLogger(__name__)

MAX_TOOL_STEPS = 20


@dataclass
class AgentConfig:
    """Configuration for the agent orchestrator.

    Attributes:
        max_steps: Maximum model rounds per turn before failing it
        default_model: Model used when the caller passes none
    """

    max_steps: int = MAX_TOOL_STEPS
    default_model: str = "kimi-k2.5"


class ConversationState:
    """Role-tagged entries sent verbatim to the model each round.

    After a tool round, the assistant entry carrying the tool calls is
    followed by exactly one ``tool`` entry per call, in call order.
    """

    def __init__(self, system_prompt: str, user_message: str):
        self.entries: list[dict[str, Any]] = [
            {"role": MessageRole.SYSTEM.value, "content": system_prompt},
            {"role": MessageRole.USER.value, "content": user_message},
        ]

    def add_assistant(self, response: ModelResponse) -> None:
        entry: dict[str, Any] = {
            "role": MessageRole.ASSISTANT.value,
            "content": response.content,
            "tool_calls": [tc.to_api() for tc in response.tool_calls],
        }
        if response.reasoning:
            entry["reasoning_content"] = response.reasoning
        self.entries.append(entry)

    def add_tool_result(self, tool_call_id: str, result: ToolResult) -> None:
        self.entries.append(
            {
                "role": MessageRole.TOOL.value,
                "tool_call_id": tool_call_id,
                "content": result.to_content(),
            }
        )

    def to_messages(self) -> list[dict[str, Any]]:
        """Snapshot of the entries for one model round."""
        return list(self.entries)

    @property
    def tool_entries(self) -> list[dict[str, Any]]:
        return [e for e in self.entries if e["role"] == MessageRole.TOOL.value]

    def __len__(self) -> int:
        return len(self.entries)


class AgentOrchestrator:
    """Drives one turn from user message to done, cancelled or error.

    Manages the turn loop:
    1. Check cancellation
    2. Run one model round, raced against cancellation
    3. Stop with ``done`` when the model calls no tools
    4. Otherwise execute each tool call in order and loop back

    Every terminal path emits exactly one of ``done``, ``cancelled`` or
    ``error`` for the session.

    Usage:
        orchestrator = AgentOrchestrator(
            provider=provider,
            catalog=catalog,
            dispatcher=ToolDispatcher(catalog, LocalToolBackend()),
            approvals=ApprovalService(emitter=streamer),
            emitter=streamer,
        )

        outcome = await orchestrator.run_turn(
            session_id="s1",
            user_message="List the Python files",
            model="kimi-k2.5",
            work_dir="/home/me/project",
            auto_approve=False,
            cancel=CancellationToken(),
        )
    """

    def __init__(
        self,
        provider: IModelProvider,
        catalog: ToolCatalog,
        dispatcher: ToolDispatcher,
        approvals: ApprovalService,
        emitter: EventStreamer,
        prompt_builder: Optional[PromptBuilder] = None,
        config: Optional[AgentConfig] = None,
    ):
        """Initialize the agent orchestrator.

        Args:
            provider: Model provider for rounds
            catalog: Tools exposed to the model
            dispatcher: Executes approved tool calls
            approvals: Pending approval registry
            emitter: Event streamer for the observer
            prompt_builder: Builds the system preamble
            config: Agent configuration
        """
        self.provider = provider
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.approvals = approvals
        self.emitter = emitter
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.config = config or AgentConfig()

    async def run_turn(
        self,
        session_id: str,
        user_message: str,
        model: Optional[str],
        work_dir: str,
        auto_approve: bool,
        cancel: CancellationToken,
        config_path: Optional[str] = None,
    ) -> TurnOutcome:
        """Run one turn to a terminal outcome.

        Args:
            session_id: Session the turn belongs to
            user_message: Text submitted by the observer
            model: Model identifier (defaults to the configured model)
            work_dir: Working directory for the preamble and tools
            auto_approve: Skip approval for gated tools
            cancel: Cancellation token for this turn
            config_path: Config file passed through to network tools

        Returns:
            TurnOutcome with status done, cancelled or error
        """
        model = model or self.config.default_model
        rounds = 0
        executed: list[ToolCall] = []

        logger.info(f"Turn started for session {session_id} (model={model})")

        try:
            cancel.raise_if_cancelled()
            state = ConversationState(
                self.prompt_builder.build(work_dir),
                self.prompt_builder.parse_user_input(user_message),
            )
            tools = self.catalog.get_all_tools()

            for _ in range(self.config.max_steps):
                cancel.raise_if_cancelled()

                rounds += 1
                response = await cancel.race(
                    self.provider.complete(model, state.to_messages(), tools)
                )

                if response.reasoning:
                    self.emitter.emit(
                        StreamEventKind.THINKING, session_id, content=response.reasoning
                    )

                if not response.has_tool_calls:
                    return self._finish(session_id, response, rounds, executed)

                state.add_assistant(response)
                for call in response.tool_calls:
                    cancel.raise_if_cancelled()
                    result = await self._run_tool_call(
                        session_id, call, work_dir, auto_approve, cancel, config_path
                    )
                    self.emitter.emit(
                        StreamEventKind.TOOL_RESULT,
                        session_id,
                        tool_call_id=call.id,
                        name=call.name,
                        ok=result.ok,
                        summary=result.summary,
                        output=result.output,
                    )
                    state.add_tool_result(call.id, result)
                    executed.append(call)

            raise StepBudgetExceeded(self.config.max_steps)

        except TurnCancelled:
            logger.info(f"Turn cancelled for session {session_id} after {rounds} round(s)")
            self.emitter.emit(StreamEventKind.CANCELLED, session_id)
            return TurnOutcome(
                status=TurnStatus.CANCELLED,
                session_id=session_id,
                rounds=rounds,
                tool_calls=executed,
            )

        except AgentDeskError as e:
            logger.error(f"Turn failed for session {session_id}: {e}")
            return self._fail(session_id, e.message, rounds, executed)

        except Exception as e:
            logger.exception(f"Unexpected error in turn for session {session_id}")
            return self._fail(session_id, str(e) or e.__class__.__name__, rounds, executed)

    async def _run_tool_call(
        self,
        session_id: str,
        call: ToolCall,
        work_dir: str,
        auto_approve: bool,
        cancel: CancellationToken,
        config_path: Optional[str],
    ) -> ToolResult:
        """Approve (if gated) and dispatch one call, emitting its status events."""
        label = tool_label(call.name, call.arguments)

        if self.catalog.requires_approval(call.name) and not auto_approve:
            approved = await self.approvals.request(
                session_id=session_id,
                tool_call_id=call.id,
                name=call.name,
                args=call.arguments,
                cancel=cancel,
                emitter=self.emitter,
            )
            if not approved:
                rejected = ApprovalRejected()
                self.emitter.emit(
                    StreamEventKind.TOOL_STATUS,
                    session_id,
                    tool_call_id=call.id,
                    state="end",
                    name=call.name,
                    label=label,
                    ok=False,
                    summary=rejected.message,
                )
                return ToolResult.failure(rejected.message)

        self.emitter.emit(
            StreamEventKind.TOOL_STATUS,
            session_id,
            tool_call_id=call.id,
            state="start",
            name=call.name,
            label=label,
        )

        result = await self.dispatcher.dispatch(
            call.name,
            call.arguments,
            work_dir,
            ToolContext(tool_call_id=call.id, config_path=config_path),
        )

        self.emitter.emit(
            StreamEventKind.TOOL_STATUS,
            session_id,
            tool_call_id=call.id,
            state="end",
            name=call.name,
            label=label,
            ok=result.ok,
            summary=result.summary,
        )
        return result

    def _finish(
        self,
        session_id: str,
        response: ModelResponse,
        rounds: int,
        executed: list[ToolCall],
    ) -> TurnOutcome:
        if response.content:
            self.emitter.emit(StreamEventKind.CHUNK, session_id, content=response.content)
        else:
            logger.warning(f"Model returned an empty response for session {session_id}")

        self.emitter.emit(StreamEventKind.DONE, session_id, usage=response.usage.to_dict())
        logger.info(f"Turn finished for session {session_id} after {rounds} round(s)")
        return TurnOutcome(
            status=TurnStatus.DONE,
            session_id=session_id,
            content=response.content,
            usage=response.usage,
            rounds=rounds,
            tool_calls=executed,
        )

    def _fail(
        self,
        session_id: str,
        message: str,
        rounds: int,
        executed: list[ToolCall],
    ) -> TurnOutcome:
        self.emitter.emit(StreamEventKind.ERROR, session_id, message=message)
        return TurnOutcome(
            status=TurnStatus.ERROR,
            session_id=session_id,
            error=message,
            rounds=rounds,
            tool_calls=executed,
        )
