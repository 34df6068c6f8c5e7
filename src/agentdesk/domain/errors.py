"""Exception hierarchy for the desktop agent.

Exception Hierarchy:
    AgentDeskError (base)
    ├── AuthError (fatal to the turn - no valid credential)
    ├── TransportError (fatal - model call failed, never retried)
    ├── ParseError (fatal - malformed model response)
    ├── ArgumentError (non-fatal - becomes ToolResult(ok=False))
    ├── UnknownToolError (non-fatal - becomes ToolResult(ok=False))
    ├── ApprovalRejected (non-fatal - synthesized ToolResult(ok=False))
    ├── TurnCancelled (not an error - distinct terminal outcome)
    ├── StepBudgetExceeded (fatal - turn ran out of rounds)
    └── StoreUnavailableError (fatal to the store operation only)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


class AgentDeskError(Exception):
    """Base exception for all agent errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "AUTH_ERROR")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether the turn can continue past this error
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Fatal Model-Round Errors
# ============================================


class AuthError(AgentDeskError):
    """Raised when no valid credential is available for the model call."""

    def __init__(self, message: str = "Not logged in. Please login first.", **kwargs):
        super().__init__(message, code="AUTH_ERROR", recoverable=False, **kwargs)


class TransportError(AgentDeskError):
    """Raised when the model call fails on the network or with a bad status.

    Attributes:
        status_code: HTTP status code, when the server answered
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body[:500]
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.status_code = status_code


class ParseError(AgentDeskError):
    """Raised when the model response cannot be interpreted."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="PARSE_ERROR", recoverable=False, **kwargs)


# ============================================
# Non-Fatal Tool Errors
# ============================================


class ArgumentError(AgentDeskError):
    """Raised when a tool is invoked with missing or invalid arguments.

    Attributes:
        tool_name: Tool that rejected the arguments
        field: First offending argument, if known
    """

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if tool_name:
            details["tool"] = tool_name
        if field:
            details["field"] = field
        super().__init__(
            message,
            code="ARGUMENT_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.tool_name = tool_name
        self.field = field


class UnknownToolError(AgentDeskError):
    """Raised when the model calls a tool absent from the catalog."""

    def __init__(self, tool_name: str, **kwargs):
        super().__init__(
            f"Unknown tool: {tool_name}",
            code="UNKNOWN_TOOL",
            details={"tool": tool_name},
            recoverable=True,
            **kwargs,
        )
        self.tool_name = tool_name


class ApprovalRejected(AgentDeskError):
    """The observer rejected a gated tool call."""

    def __init__(self, message: str = "User rejected tool request.", **kwargs):
        super().__init__(message, code="APPROVAL_REJECTED", recoverable=True, **kwargs)


# ============================================
# Turn Control
# ============================================


class TurnCancelled(AgentDeskError):
    """The turn's cancellation token fired while it was suspended."""

    def __init__(self, message: str = "Cancelled", **kwargs):
        super().__init__(message, code="CANCELLED", recoverable=False, **kwargs)


class StepBudgetExceeded(AgentDeskError):
    """The turn used every round of its step budget without finishing."""

    def __init__(self, max_steps: int, **kwargs):
        super().__init__(
            "Exceeded maximum tool steps",
            code="STEP_BUDGET_EXCEEDED",
            details={"max_steps": max_steps},
            recoverable=False,
            **kwargs,
        )
        self.max_steps = max_steps


# ============================================
# Storage
# ============================================


class StoreUnavailableError(AgentDeskError):
    """A shared store could not complete the requested operation."""

    def __init__(self, message: str, store: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if store:
            details["store"] = store
        super().__init__(
            message,
            code="STORE_UNAVAILABLE",
            details=details,
            recoverable=False,
            **kwargs,
        )
