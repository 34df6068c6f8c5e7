"""Desktop agent: a tool-calling orchestrator with approvals and session history.

Layout:
- domain: entities, errors and ports
- orchestrator: turn loop, approval gate, cancellation, events
- tools: tool catalog and local backend
- providers: model endpoints and credentials
- sessions: session store and transcript reconstruction
- api: FastAPI router and WebSocket handler
"""

from .domain import (
    Message,
    Session,
    StreamEvent,
    StreamEventKind,
    ToolCall,
    ToolResult,
    TurnOutcome,
    TurnStatus,
)
from .orchestrator import (
    AgentConfig,
    AgentOrchestrator,
    ApprovalService,
    CancellationToken,
    ChatService,
    EventStreamer,
    ToolDispatcher,
)
from .tools import ToolCatalog

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "AgentOrchestrator",
    "ApprovalService",
    "CancellationToken",
    "ChatService",
    "EventStreamer",
    "ToolCatalog",
    "ToolDispatcher",
    "Message",
    "Session",
    "StreamEvent",
    "StreamEventKind",
    "ToolCall",
    "ToolResult",
    "TurnOutcome",
    "TurnStatus",
]
