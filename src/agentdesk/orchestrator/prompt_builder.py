"""
Prompt Builder for Agent Orchestrator.

Encapsulates system preamble construction:
- Listing the working directory in an ``ls -la`` style
- Appending the project's AGENTS.md when present
- Preparing user input before it enters the conversation
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SKIPPED_ENTRIES = frozenset({"target", "node_modules", "dist", "build"})
AGENTS_FILES = ("AGENTS.md", "agents.md")


def format_size(size: int) -> str:
    """Short size string: bytes below 1 KiB, then ``x.yK`` / ``x.yM``."""
    if size < 1024:
        return str(size)
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}K"
    return f"{size / (1024 * 1024):.1f}M"


class PromptBuilder:
    """Manages system preamble construction for the agent.

    Responsibilities:
    - Summarize the working directory for the model
    - Include project instructions from AGENTS.md
    - Normalize user input

    Usage:
        prompt_builder = PromptBuilder()

        system_prompt = prompt_builder.build(work_dir="/home/me/project")
        user_text = prompt_builder.parse_user_input(message)
    """

    def __init__(
        self,
        skipped_entries: frozenset[str] = SKIPPED_ENTRIES,
        agents_files: tuple[str, ...] = AGENTS_FILES,
    ):
        """Initialize the prompt builder.

        Args:
            skipped_entries: Directory entry names left out of the listing
            agents_files: Candidate instruction file names, first match wins
        """
        self.skipped_entries = skipped_entries
        self.agents_files = agents_files

    def build(self, work_dir: str) -> str:
        """Build the system preamble for a working directory.

        Constructs the preamble by:
        1. Stating the working directory
        2. Appending the directory listing
        3. Appending AGENTS.md content if available

        Args:
            work_dir: Working directory of the turn

        Returns:
            Complete system prompt
        """
        prompt = (
            f"Current working directory: {work_dir}\n\n"
            f"Directory listing:\n{self.list_directory(work_dir)}\n"
        )

        agents_md = self.load_agents_md(work_dir)
        if agents_md is not None:
            prompt += f"\nAGENTS.md:\n{agents_md}\n"

        return prompt

    def list_directory(self, work_dir: str) -> str:
        """Render the directory as ``ls -la`` output.

        Directories come first, then files, each group sorted by name.
        Hidden entries and common build directories are skipped. An
        unreadable directory renders as ``total 0``.
        """
        entries: list[tuple[str, bool, int]] = []
        try:
            children = list(Path(work_dir).iterdir())
        except OSError as e:
            logger.warning(f"Cannot list {work_dir}: {e}")
            children = []

        for child in children:
            name = child.name
            if name.startswith(".") or name in self.skipped_entries:
                continue
            try:
                is_dir = child.is_dir()
                size = child.stat().st_size
            except OSError:
                is_dir, size = False, 0
            entries.append((name, is_dir, size))

        entries.sort(key=lambda e: (not e[1], e[0]))

        lines = [f"total {len(entries)}"]
        for name, is_dir, size in entries:
            mode = "drwxr-xr-x" if is_dir else "-rw-r--r--"
            size_str = "-" if is_dir else format_size(size)
            lines.append(f"{mode}  1 user  group  {size_str:>8} Jan  1 00:00 {name}")
        return "\n".join(lines) + "\n"

    def load_agents_md(self, work_dir: str) -> Optional[str]:
        """Read the first instruction file that exists, if any."""
        for filename in self.agents_files:
            path = Path(work_dir) / filename
            try:
                return path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
        return None

    def parse_user_input(self, text: str) -> str:
        """Prepare user text for the conversation.

        Returned unchanged; references such as ``@file`` are not expanded yet.
        """
        return text
