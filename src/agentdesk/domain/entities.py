"""
Domain entities for the desktop agent.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures shared by the orchestrator,
the tool dispatcher, the session store and the transcript reader.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


def now_ts() -> int:
    """Current UTC time as whole epoch seconds (persisted timestamp format)."""
    return int(time.time())


# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of an entry in a conversation."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


# ============================================
# Tool System
# ============================================


@dataclass
class ToolDefinition:
    """Definition of an available tool.

    Attributes:
        name: Wire name the model calls (e.g., 'ReadFile')
        description: Human-readable description
        parameters: JSON Schema for parameters
        requires_approval: True if the tool has side effects on the
            filesystem or process and must be approved before it runs
    """

    name: str
    description: str
    parameters: dict[str, Any]
    requires_approval: bool = False

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class ToolCall:
    """A tool call issued by the model.

    Attributes:
        name: Tool name being called
        arguments: Decoded arguments ({} when empty or unparsable)
        id: Correlation id; synthesized when the model leaves it out
        raw_arguments: Arguments string exactly as the model sent it
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    raw_arguments: str = "{}"

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ToolCall:
        """Build a ToolCall from an OpenAI-style ``tool_calls`` item.

        Missing ids are synthesized and an empty or malformed
        ``arguments`` payload decodes to ``{}``.
        """
        function = data.get("function") or {}
        raw = function.get("arguments")
        if isinstance(raw, dict):
            arguments = raw
            raw = json.dumps(raw)
        else:
            raw = raw if isinstance(raw, str) and raw else "{}"
            try:
                arguments = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}

        return cls(
            id=str(data.get("id") or ""),
            name=str(function.get("name") or ""),
            arguments=arguments,
            raw_arguments=raw,
        )

    def to_api(self) -> dict[str, Any]:
        """Convert to the OpenAI ``tool_calls`` item format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.raw_arguments,
            },
        }

    def to_dict(self) -> dict[str, Any]:
        """Persisted form: arguments kept as the raw JSON string."""
        return {"id": self.id, "name": self.name, "arguments": self.raw_arguments}


@dataclass
class ToolResult:
    """Uniform result of a tool execution.

    ``ok=False`` never raises; it flows back to the model as a tool
    entry so the model can react.
    """

    ok: bool
    summary: str
    output: str = ""

    @classmethod
    def failure(cls, summary: str, output: str = "") -> ToolResult:
        """Create a failed result."""
        return cls(ok=False, summary=summary, output=output)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "summary": self.summary, "output": self.output}

    def to_content(self) -> str:
        """Serialize as the content of a ``tool`` conversation entry."""
        return json.dumps(self.to_dict(), ensure_ascii=False)


# ============================================
# Model Responses
# ============================================


@dataclass
class TokenUsage:
    """Token accounting for one model round."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_api(cls, usage: Optional[dict[str, Any]]) -> TokenUsage:
        """Read usage from a response; total falls back to prompt + completion."""
        usage = usage if isinstance(usage, dict) else {}

        def _int(key: str) -> Optional[int]:
            value = usage.get(key)
            return value if isinstance(value, int) and value >= 0 else None

        prompt = _int("prompt_tokens") or 0
        completion = _int("completion_tokens") or 0
        total = _int("total_tokens")
        if total is None:
            total = prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ModelResponse:
    """One parsed model round.

    Attributes:
        content: Assistant text (may be empty)
        reasoning: Reasoning/explanatory text, emitted as ``thinking``
        tool_calls: Tool calls in the order the model issued them
        usage: Token usage for the round
    """

    content: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# ============================================
# Streaming Events
# ============================================


class StreamEventKind(str, Enum):
    """Kinds of events delivered to the observer."""

    THINKING = "thinking"
    TOOL_STATUS = "tool_status"
    TOOL_APPROVAL = "tool_approval"
    TOOL_RESULT = "tool_result"
    CHUNK = "chunk"
    DONE = "done"
    CANCELLED = "cancelled"
    ERROR = "error"


# Payload fields every event of a kind must carry
REQUIRED_EVENT_FIELDS: dict[StreamEventKind, tuple[str, ...]] = {
    StreamEventKind.THINKING: ("session_id", "content"),
    StreamEventKind.TOOL_STATUS: ("session_id", "tool_call_id", "state", "name", "label"),
    StreamEventKind.TOOL_APPROVAL: ("session_id", "request_id", "name", "args"),
    StreamEventKind.TOOL_RESULT: (
        "session_id",
        "tool_call_id",
        "name",
        "ok",
        "summary",
        "output",
    ),
    StreamEventKind.CHUNK: ("session_id", "content"),
    StreamEventKind.DONE: ("session_id", "usage"),
    StreamEventKind.CANCELLED: ("session_id",),
    StreamEventKind.ERROR: ("session_id", "message"),
}


@dataclass
class StreamEvent:
    """A single emission on the observer channel.

    Attributes:
        event: Event kind
        data: Payload; always carries ``session_id``
        sequence: Per-session sequence number for ordering
    """

    event: StreamEventKind
    data: dict[str, Any]
    sequence: int = 0

    @property
    def session_id(self) -> Optional[str]:
        return self.data.get("session_id")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format ``{event, data}``."""
        return {"event": self.event.value, "data": self.data}


# ============================================
# Turn Outcome
# ============================================


class TurnStatus(str, Enum):
    """Terminal outcome of a turn."""

    DONE = "done"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class TurnOutcome:
    """What a turn ended with.

    Attributes:
        status: done, cancelled or error
        session_id: Session the turn belonged to
        content: Final assistant text (done only)
        usage: Usage of the final round (done only)
        error: Error message (error only)
        rounds: Number of model rounds issued
        tool_calls: Every tool call executed during the turn
    """

    status: TurnStatus
    session_id: str
    content: str = ""
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None
    rounds: int = 0
    tool_calls: list[ToolCall] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == TurnStatus.DONE


# ============================================
# Persisted Sessions
# ============================================


@dataclass
class Message:
    """A persisted chat message. Immutable once written."""

    role: str
    content: str
    timestamp: int = field(default_factory=now_ts)
    tool_calls: Optional[list[ToolCall]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "tool_calls": (
                [tc.to_dict() for tc in self.tool_calls] if self.tool_calls else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Rebuild a message from its persisted form.

        Raises:
            ValueError: If required fields are missing or mistyped
        """
        role = data.get("role")
        content = data.get("content")
        timestamp = data.get("timestamp")
        if not isinstance(role, str) or not isinstance(content, str):
            raise ValueError("message requires string role and content")
        if not isinstance(timestamp, int):
            raise ValueError("message requires an integer timestamp")

        tool_calls = None
        raw_calls = data.get("tool_calls")
        if isinstance(raw_calls, list):
            tool_calls = [
                ToolCall.from_api({"id": tc.get("id"), "function": tc})
                for tc in raw_calls
                if isinstance(tc, dict)
            ]
        return cls(role=role, content=content, timestamp=timestamp, tool_calls=tool_calls)


@dataclass
class Session:
    """A GUI chat session.

    Messages are append-only; metadata changes only through
    :meth:`add_message` and :meth:`touch`.
    """

    id: str
    title: str
    work_dir: str
    messages: list[Message] = field(default_factory=list)
    created_at: int = field(default_factory=now_ts)
    updated_at: int = 0

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = self.created_at

    def add_message(self, message: Message) -> None:
        """Append a message and bump ``updated_at``."""
        self.messages.append(message)
        self.touch()

    def touch(self) -> None:
        self.updated_at = now_ts()

    def to_metadata(self) -> dict[str, Any]:
        """Metadata persisted next to the message log."""
        return {
            "id": self.id,
            "title": self.title,
            "work_dir": self.work_dir,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class SessionInfo:
    """Listing entry for the session picker."""

    id: str
    title: str
    updated_at: float
    work_dir: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "updated_at": self.updated_at,
            "work_dir": self.work_dir,
        }
