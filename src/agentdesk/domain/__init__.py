"""Domain layer: entities, errors and port interfaces."""

from .entities import (
    Message,
    MessageRole,
    ModelResponse,
    REQUIRED_EVENT_FIELDS,
    Session,
    SessionInfo,
    StreamEvent,
    StreamEventKind,
    TokenUsage,
    ToolCall,
    ToolDefinition,
    ToolResult,
    TurnOutcome,
    TurnStatus,
)
from .errors import (
    AgentDeskError,
    ApprovalRejected,
    ArgumentError,
    AuthError,
    ParseError,
    StepBudgetExceeded,
    StoreUnavailableError,
    TransportError,
    TurnCancelled,
    UnknownToolError,
)
from .ports import ICredentialProvider, IEventSink, IModelProvider, IToolBackend

__all__ = [
    # Entities
    "Message",
    "MessageRole",
    "ModelResponse",
    "REQUIRED_EVENT_FIELDS",
    "Session",
    "SessionInfo",
    "StreamEvent",
    "StreamEventKind",
    "TokenUsage",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "TurnOutcome",
    "TurnStatus",
    # Errors
    "AgentDeskError",
    "ApprovalRejected",
    "ArgumentError",
    "AuthError",
    "ParseError",
    "StepBudgetExceeded",
    "StoreUnavailableError",
    "TransportError",
    "TurnCancelled",
    "UnknownToolError",
    # Ports
    "ICredentialProvider",
    "IEventSink",
    "IModelProvider",
    "IToolBackend",
]
