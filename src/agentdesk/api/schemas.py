"""
Pydantic schemas for the agent API.

Defines request/response models for the desktop agent HTTP surface.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Constants
# =============================================================================

MAX_MESSAGE_LENGTH = 100_000


# =============================================================================
# Chat Schemas
# =============================================================================


class ChatSettings(BaseModel):
    """Per-request overrides. Empty strings fall back to the server defaults."""

    model: Optional[str] = None
    work_dir: Optional[str] = None
    config_file: Optional[str] = None
    yolo: Optional[bool] = None


class ChatRequest(BaseModel):
    """Request to run a turn."""

    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    session_id: Optional[str] = None
    settings: ChatSettings = Field(default_factory=ChatSettings)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "message": "List the Python files in this project",
                "session_id": None,
                "settings": {"model": "kimi-k2.5", "yolo": False},
            }
        }
    )


class ChatResponse(BaseModel):
    """Response after starting a turn.

    Events for the turn arrive over the WebSocket.
    """

    session_id: str
    status: str = "processing"


# =============================================================================
# Approval / Cancel Schemas
# =============================================================================


class ApprovalDecision(BaseModel):
    """Decision for a pending tool approval."""

    approved: bool


class ApprovalResponse(BaseModel):
    request_id: str
    status: str


class CancelRequest(BaseModel):
    """Cancel one session's turn, or every live turn when session_id is omitted."""

    session_id: Optional[str] = None


class CancelResponse(BaseModel):
    cancelled: int


# =============================================================================
# Session Schemas
# =============================================================================


class SessionInfoResponse(BaseModel):
    """A session in the picker."""

    id: str
    title: str
    updated_at: float
    work_dir: str


class SessionListResponse(BaseModel):
    sessions: list[SessionInfoResponse]
    total: int


class ToolCallResponse(BaseModel):
    id: str
    name: str
    arguments: str


class MessageResponse(BaseModel):
    """A persisted message."""

    role: str
    content: str
    timestamp: int
    tool_calls: Optional[list[ToolCallResponse]] = None


class MessageListResponse(BaseModel):
    session_id: str
    messages: list[MessageResponse]


# =============================================================================
# Model Schemas
# =============================================================================


class ModelListResponse(BaseModel):
    models: list[dict[str, Any]]
