"""Agent API layer.

Provides the FastAPI router and WebSocket handler for the desktop agent.
"""

from .router import create_agent_dependencies, reset_agent_dependencies, router
from .schemas import (
    ApprovalDecision,
    CancelRequest,
    ChatRequest,
    ChatResponse,
    ChatSettings,
    MessageListResponse,
    SessionListResponse,
)

__all__ = [
    "router",
    "create_agent_dependencies",
    "reset_agent_dependencies",
    "ApprovalDecision",
    "CancelRequest",
    "ChatRequest",
    "ChatResponse",
    "ChatSettings",
    "MessageListResponse",
    "SessionListResponse",
]
