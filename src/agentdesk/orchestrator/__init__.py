"""Agent Orchestrator.

The orchestrator coordinates all components of a turn:
- Model provider for rounds
- Tool catalog and dispatcher for tool execution
- Approval gate for gated tools
- Cancellation token raced against every wait
- Event streaming to the observer

Provides:
- Main orchestrator and configuration
- Approval service and cancellation token
- Tool dispatch and status labels
- Prompt building from the working directory
- Chat service with live-turn tracking
"""

from .agent import AgentConfig, AgentOrchestrator, ConversationState
from .approval_gate import ApprovalResolution, ApprovalService, PendingApproval
from .cancellation import CancellationToken
from .chat_service import ChatService, TurnRegistry
from .event_streamer import CallbackEventSink, EventStreamer, QueueEventSink
from .prompt_builder import PromptBuilder
from .tool_executor import ToolContext, ToolDispatcher, tool_label

__all__ = [
    # Main orchestrator
    "AgentOrchestrator",
    "AgentConfig",
    "ConversationState",
    # Turn control
    "ApprovalService",
    "ApprovalResolution",
    "PendingApproval",
    "CancellationToken",
    "ChatService",
    "TurnRegistry",
    # Events
    "EventStreamer",
    "QueueEventSink",
    "CallbackEventSink",
    # Tools and prompts
    "ToolDispatcher",
    "ToolContext",
    "tool_label",
    "PromptBuilder",
]
