"""
Port interfaces (abstract base classes) for the agent.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .entities import ModelResponse, StreamEvent, ToolDefinition, ToolResult


# ============================================
# Model Provider Interface
# ============================================


class IModelProvider(ABC):
    """Interface for chat-completion model providers.

    One call is one round: the full conversation goes out, one parsed
    response comes back. Implementations never retry.
    """

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: Optional[list[ToolDefinition]] = None,
    ) -> ModelResponse:
        """Run one model round.

        Args:
            model: Model identifier
            messages: Conversation entries, sent verbatim
            tools: Tool catalog exposed to the model

        Returns:
            Parsed model response

        Raises:
            AuthError: No valid credential
            TransportError: Network failure or non-success status
            ParseError: Response body could not be interpreted
        """
        pass

    @abstractmethod
    async def list_models(self) -> list[dict[str, Any]]:
        """Return the models advertised by the endpoint."""
        pass


# ============================================
# Credential Provider Interface
# ============================================


class ICredentialProvider(ABC):
    """Supplies bearer tokens for the model endpoint."""

    @abstractmethod
    async def get_valid_token(self) -> Optional[str]:
        """Return a usable token, or None when not logged in."""
        pass


# ============================================
# Tool Backend Interface
# ============================================


class IToolBackend(ABC):
    """Concrete tool implementations.

    Every method returns a ToolResult; failures are encoded as
    ``ok=False`` rather than raised where the backend can tell.

    The network tools receive the turn's ``config_path`` so a backend
    can read its service settings from the user's config file. It is
    forwarded unchanged and may be ignored; LocalToolBackend ignores it
    and takes its search endpoint from its constructor.
    """

    @abstractmethod
    async def read_file(
        self, work_dir: str, path: str, line_offset: int, n_lines: int
    ) -> ToolResult:
        pass

    @abstractmethod
    async def run_shell(self, work_dir: str, command: str, timeout: int) -> ToolResult:
        pass

    @abstractmethod
    async def write_file(
        self, work_dir: str, path: str, content: str, mode: str
    ) -> ToolResult:
        pass

    @abstractmethod
    async def str_replace_file(
        self, work_dir: str, path: str, edits: list[dict[str, Any]]
    ) -> ToolResult:
        pass

    @abstractmethod
    async def search_web(
        self,
        config_path: Optional[str],
        tool_call_id: str,
        query: str,
        limit: int,
        include_content: bool,
    ) -> ToolResult:
        pass

    @abstractmethod
    async def fetch_url(
        self, config_path: Optional[str], tool_call_id: str, url: str
    ) -> ToolResult:
        pass


# ============================================
# Event Sink Interface
# ============================================


class IEventSink(ABC):
    """Destination for observer events.

    ``deliver`` must not block the caller; it may raise if the observer
    is gone, and the emitter treats that as a dropped delivery.
    """

    @abstractmethod
    def deliver(self, event: StreamEvent) -> None:
        pass
