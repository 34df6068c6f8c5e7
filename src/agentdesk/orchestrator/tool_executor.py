"""
Tool Executor.

Maps a tool name and its validated arguments to a backend call and
returns a uniform ToolResult. Dispatch never raises: unknown tools,
bad arguments and backend failures all come back as ``ok=False`` with a
readable summary. Approval and cancellation are the caller's concern.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..domain.entities import ToolResult
from ..domain.errors import ArgumentError, UnknownToolError
from ..domain.ports import IToolBackend
from ..tools.catalog import (
    FETCH_URL,
    READ_FILE,
    SEARCH_WEB,
    SHELL,
    STR_REPLACE_FILE,
    WRITE_FILE,
    FetchURLArgs,
    ReadFileArgs,
    SearchWebArgs,
    ShellArgs,
    StrReplaceFileArgs,
    ToolArgs,
    ToolCatalog,
    WriteFileArgs,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Per-call context handed to the backend.

    Attributes:
        tool_call_id: Correlation id of the call
        config_path: Config file the network tools read service settings from
    """

    tool_call_id: str
    config_path: Optional[str] = None


# Label verb and the argument shown next to it
_LABELS: dict[str, tuple[str, str]] = {
    READ_FILE: ("Reading", "path"),
    SHELL: ("Running", "command"),
    WRITE_FILE: ("Writing", "path"),
    STR_REPLACE_FILE: ("Editing", "path"),
    SEARCH_WEB: ("Searching", "query"),
    FETCH_URL: ("Fetching", "url"),
}


def tool_label(name: str, args: dict[str, Any]) -> str:
    """Human-readable label for a tool status card."""
    verb, key = _LABELS.get(name, ("Running", ""))
    value = args.get(key) if key else None
    if isinstance(value, str) and value:
        return f"{verb} {value}"
    return f"Running {name}"


Handler = Callable[[ToolArgs, str, ToolContext], Awaitable[ToolResult]]


class ToolDispatcher:
    """Routes tool calls to the tool backend.

    Usage:
        dispatcher = ToolDispatcher(ToolCatalog(), LocalToolBackend())

        result = await dispatcher.dispatch(
            "ReadFile",
            {"path": "README.md"},
            work_dir="/repo",
            ctx=ToolContext(tool_call_id="call_1"),
        )
    """

    def __init__(self, catalog: ToolCatalog, backend: IToolBackend):
        """Initialize the dispatcher.

        Args:
            catalog: Tool catalog used for validation
            backend: Concrete tool implementations
        """
        self.catalog = catalog
        self.backend = backend
        self._handlers: dict[str, Handler] = {
            READ_FILE: self._read_file,
            SHELL: self._shell,
            WRITE_FILE: self._write_file,
            STR_REPLACE_FILE: self._str_replace_file,
            SEARCH_WEB: self._search_web,
            FETCH_URL: self._fetch_url,
        }

    async def dispatch(
        self,
        name: str,
        args: dict[str, Any],
        work_dir: str,
        ctx: ToolContext,
    ) -> ToolResult:
        """Execute one tool call.

        Args:
            name: Tool name
            args: Raw arguments from the model
            work_dir: Working directory for file and shell tools
            ctx: Call context

        Returns:
            Tool result; failures are encoded as ``ok=False``
        """
        try:
            validated = self.catalog.validate(name, args)
        except (UnknownToolError, ArgumentError) as e:
            logger.info(f"Tool {name} rejected: {e.message}")
            return ToolResult.failure(e.message)

        handler = self._handlers.get(name)
        if handler is None:
            return ToolResult.failure(f"Unknown tool: {name}")

        logger.info(f"Executing tool: {name}")
        try:
            result = await handler(validated, work_dir, ctx)
        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return ToolResult.failure(f"{name} failed: {e}")

        logger.debug(f"Tool {name} result: ok={result.ok} summary={result.summary}")
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _read_file(self, args: ReadFileArgs, work_dir: str, ctx: ToolContext) -> ToolResult:
        return await self.backend.read_file(work_dir, args.path, args.line_offset, args.n_lines)

    async def _shell(self, args: ShellArgs, work_dir: str, ctx: ToolContext) -> ToolResult:
        return await self.backend.run_shell(work_dir, args.command, args.timeout)

    async def _write_file(self, args: WriteFileArgs, work_dir: str, ctx: ToolContext) -> ToolResult:
        return await self.backend.write_file(work_dir, args.path, args.content, args.mode)

    async def _str_replace_file(
        self, args: StrReplaceFileArgs, work_dir: str, ctx: ToolContext
    ) -> ToolResult:
        edits = [edit.model_dump() for edit in args.edits]
        return await self.backend.str_replace_file(work_dir, args.path, edits)

    async def _search_web(self, args: SearchWebArgs, work_dir: str, ctx: ToolContext) -> ToolResult:
        return await self.backend.search_web(
            ctx.config_path,
            ctx.tool_call_id,
            args.query,
            args.limit,
            args.include_content,
        )

    async def _fetch_url(self, args: FetchURLArgs, work_dir: str, ctx: ToolContext) -> ToolResult:
        return await self.backend.fetch_url(ctx.config_path, ctx.tool_call_id, args.url)
