"""
Local Tool Backend.

Default implementations of the six catalog tools against the local
machine. This is I/O plumbing: it knows nothing about approval or
cancellation, and it reports every failure it can detect as a
``ToolResult(ok=False)``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import httpx
import trafilatura

from ..domain.entities import ToolResult
from ..domain.ports import ICredentialProvider, IToolBackend

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 50_000
FETCH_MAX_CHARS = 100_000


def _truncate(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} characters]"


def _resolve(work_dir: str, path: str) -> Path:
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = Path(work_dir) / candidate
    return candidate


class LocalToolBackend(IToolBackend):
    """Runs tools on the local filesystem and network.

    ``config_path`` on the network tools is accepted for the port and
    not read; the search endpoint comes from ``search_url``.

    Usage:
        backend = LocalToolBackend(search_url=settings.search_url)
        result = await backend.read_file("/repo", "README.md", 1, 100)
    """

    def __init__(
        self,
        search_url: Optional[str] = None,
        credentials: Optional[ICredentialProvider] = None,
        http_timeout: float = 30.0,
    ):
        """Initialize the backend.

        Args:
            search_url: Web search service endpoint (SearchWeb is disabled without it)
            credentials: Token source for the search service
            http_timeout: Timeout for SearchWeb/FetchURL requests
        """
        self.search_url = search_url
        self.credentials = credentials
        self.http_timeout = http_timeout

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def read_file(
        self, work_dir: str, path: str, line_offset: int, n_lines: int
    ) -> ToolResult:
        target = _resolve(work_dir, path)
        if not target.is_file():
            return ToolResult.failure(f"File not found: {path}")

        try:
            text = target.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            return ToolResult.failure(f"Failed to read {path}: {e}")

        lines = text.splitlines()
        start = max(line_offset, 1) - 1
        window = lines[start : start + n_lines]
        numbered = "\n".join(
            f"{start + i + 1:6}\t{line}" for i, line in enumerate(window)
        )

        summary = f"Read {len(window)} lines from {path}"
        if start + len(window) < len(lines):
            summary += f" ({len(lines)} total)"
        return ToolResult(ok=True, summary=summary, output=_truncate(numbered))

    async def write_file(
        self, work_dir: str, path: str, content: str, mode: str
    ) -> ToolResult:
        target = _resolve(work_dir, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "a" if mode == "append" else "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            return ToolResult.failure(f"Failed to write {path}: {e}")

        verb = "Appended" if mode == "append" else "Wrote"
        size = len(content.encode("utf-8"))
        return ToolResult(ok=True, summary=f"{verb} {size} bytes to {path}")

    async def str_replace_file(
        self, work_dir: str, path: str, edits: list[dict[str, Any]]
    ) -> ToolResult:
        target = _resolve(work_dir, path)
        if not target.is_file():
            return ToolResult.failure(f"File not found: {path}")

        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult.failure(f"Failed to read {path}: {e}")

        replaced = 0
        for edit in edits:
            old, new = edit["old"], edit["new"]
            occurrences = content.count(old) if old else 0
            if occurrences == 0:
                # Nothing is written unless every edit applies
                return ToolResult.failure(
                    f"String not found in {path}", output=_truncate(old, 2000)
                )
            if edit.get("replace_all"):
                content = content.replace(old, new)
                replaced += occurrences
            else:
                content = content.replace(old, new, 1)
                replaced += 1

        try:
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            return ToolResult.failure(f"Failed to write {path}: {e}")

        return ToolResult(
            ok=True,
            summary=f"Applied {len(edits)} edit(s) to {path} ({replaced} replacement(s))",
        )

    # ------------------------------------------------------------------
    # Process
    # ------------------------------------------------------------------

    async def run_shell(self, work_dir: str, command: str, timeout: int) -> ToolResult:
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=work_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            return ToolResult.failure(f"Failed to start command: {e}")

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ToolResult.failure(f"Command timed out after {timeout}s")

        output = _truncate(stdout.decode("utf-8", errors="replace"))
        code = proc.returncode
        logger.debug(f"Shell command exited with {code}: {command}")
        return ToolResult(
            ok=code == 0,
            summary=f"Command exited with code {code}",
            output=output,
        )

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    async def search_web(
        self,
        config_path: Optional[str],
        tool_call_id: str,
        query: str,
        limit: int,
        include_content: bool,
    ) -> ToolResult:
        if not self.search_url:
            return ToolResult.failure("Search service not configured")

        headers = {"X-Msh-Tool-Call-Id": tool_call_id}
        if self.credentials:
            token = await self.credentials.get_valid_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        payload = {
            "text_query": query,
            "limit": limit,
            "enable_page_crawling": include_content,
        }
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                response = await client.post(self.search_url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            return ToolResult.failure(f"Search failed with status {e.response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            return ToolResult.failure(f"Search failed: {e}")

        results = (data.get("search_results") or []) if isinstance(data, dict) else []
        blocks = []
        for item in results[:limit]:
            if not isinstance(item, dict):
                continue
            block = f"Title: {item.get('title', '')}\nURL: {item.get('url', '')}"
            if item.get("date"):
                block += f"\nDate: {item['date']}"
            block += f"\n{item.get('snippet', '')}"
            if include_content and item.get("content"):
                block += f"\n\n{item['content']}"
            blocks.append(block)

        return ToolResult(
            ok=True,
            summary=f"Found {len(blocks)} results for {query}",
            output=_truncate("\n\n---\n\n".join(blocks)),
        )

    async def fetch_url(
        self, config_path: Optional[str], tool_call_id: str, url: str
    ) -> ToolResult:
        try:
            async with httpx.AsyncClient(
                timeout=self.http_timeout, follow_redirects=True
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            return ToolResult.failure(f"Fetch failed with status {e.response.status_code}")
        except httpx.HTTPError as e:
            return ToolResult.failure(f"Fetch failed: {e}")

        content_type = response.headers.get("content-type", "")
        body = response.text
        if "html" in content_type:
            text = trafilatura.extract(body, url=url, include_tables=True) or ""
            if not text:
                return ToolResult.failure(f"No content extracted from {url}")
        else:
            text = body

        return ToolResult(
            ok=True,
            summary=f"Fetched {url}",
            output=_truncate(text, FETCH_MAX_CHARS),
        )
