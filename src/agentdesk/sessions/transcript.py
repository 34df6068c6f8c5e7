"""
Transcript Reconstructor.

Replays a CLI ``wire.jsonl`` log into a linear list of messages. Each
line is a JSON record shaped ``{"message": {"type": ..., "payload": ...}}``.
Reconstruction is total: blank, malformed, truncated or unrecognized
lines are skipped and never raise.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from ..domain.entities import Message, MessageRole
from ..domain.errors import ArgumentError

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
TITLE_SCAN_LINES = 50
WIRE_FILE = "wire.jsonl"

# Record tags
TURN_BEGIN = "TurnBegin"
CONTENT_PART = "ContentPart"
TOOL_CALL = "ToolCall"
STEP_END = "StepEnd"
TURN_END = "TurnEnd"


def truncate_with_ellipsis(text: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    """Cut ``text`` to ``max_chars`` characters, ending with ``...`` when cut."""
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max_chars]
    return text[: max_chars - 3] + "..."


def validate_session_id(session_id: str) -> str:
    """Check that a session id is a single plain path component.

    Raises:
        ArgumentError: The id is empty, ``.``/``..`` or contains a separator
    """
    if (
        not session_id
        or session_id in (".", "..")
        or any(ch in session_id for ch in ("/", "\\", "\x00"))
    ):
        raise ArgumentError(f"Invalid session id: {session_id!r}", field="session_id")
    return session_id


def session_dir(share_dir: Path, work_dir: str, session_id: str, kaos: str = "local") -> Path:
    """Directory of a CLI session: ``<share>/sessions/<md5(work_dir)>/<id>``.

    Non-local kaos backends prefix the hash as ``<kaos>_<hash>``.

    Raises:
        ArgumentError: ``session_id`` is not a plain path component
    """
    return sessions_root(share_dir, work_dir, kaos) / validate_session_id(session_id)


def sessions_root(share_dir: Path, work_dir: str, kaos: str = "local") -> Path:
    digest = hashlib.md5(work_dir.encode("utf-8")).hexdigest()
    name = digest if kaos == "local" else f"{kaos}_{digest}"
    return Path(share_dir) / "sessions" / name


def _parse_record(line: str) -> Optional[tuple[str, dict[str, Any]]]:
    """Return ``(type, payload)`` for a well-formed record, else None."""
    line = line.strip()
    if not line:
        return None
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(record, dict):
        return None

    message = record.get("message")
    if not isinstance(message, dict):
        return None
    kind = message.get("type")
    if not isinstance(kind, str):
        return None
    payload = message.get("payload")
    return kind, payload if isinstance(payload, dict) else {}


def _first_user_text(payload: dict[str, Any]) -> str:
    items = payload.get("user_input")
    if not isinstance(items, list):
        return ""
    for item in items:
        if isinstance(item, dict):
            text = item.get("text")
            if isinstance(text, str) and text:
                return text
    return ""


class TranscriptReconstructor:
    """State machine turning wire records into messages.

    Usage:
        reconstructor = TranscriptReconstructor()
        for line in lines:
            reconstructor.feed(line)
        messages = reconstructor.finish()
    """

    def __init__(self):
        self.messages: list[Message] = []
        self._role: Optional[str] = None
        self._buffer: list[str] = []

    def feed(self, line: str) -> None:
        """Consume one log line."""
        parsed = _parse_record(line)
        if parsed is None:
            return
        kind, payload = parsed

        if kind == TURN_BEGIN:
            self._flush()
            text = _first_user_text(payload)
            if text:
                self.messages.append(Message(role=MessageRole.USER.value, content=text))
            self._role = MessageRole.ASSISTANT.value
            self._buffer = []

        elif kind == CONTENT_PART:
            if self._role != MessageRole.ASSISTANT.value:
                return
            text = payload.get("text")
            if payload.get("type") == "text" and isinstance(text, str):
                self._buffer.append(text)

        elif kind == TOOL_CALL:
            pass

        elif kind in (STEP_END, TURN_END):
            self._flush()

    def finish(self) -> list[Message]:
        """Flush remaining assistant text and return the messages."""
        self._flush()
        return self.messages

    def _flush(self) -> None:
        if self._role != MessageRole.ASSISTANT.value:
            return
        content = "".join(self._buffer)
        if content:
            self.messages.append(Message(role=MessageRole.ASSISTANT.value, content=content))
        self._buffer = []


def reconstruct_transcript(lines: Iterable[str]) -> list[Message]:
    """Replay wire log lines into an ordered message list."""
    reconstructor = TranscriptReconstructor()
    for line in lines:
        reconstructor.feed(line)
    return reconstructor.finish()


def load_transcript(wire_file: Path) -> list[Message]:
    """Read and replay a wire file. A missing or unreadable file yields []."""
    try:
        text = Path(wire_file).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        if Path(wire_file).exists():
            logger.warning(f"Cannot read transcript {wire_file}: {e}")
        return []
    return reconstruct_transcript(text.splitlines())


def extract_session_title(wire_file: Path) -> Optional[str]:
    """Title from the first TurnBegin text within the first lines of a wire file."""
    try:
        with open(wire_file, encoding="utf-8", errors="replace") as f:
            for index, line in enumerate(f):
                if index >= TITLE_SCAN_LINES:
                    break
                parsed = _parse_record(line)
                if parsed is None or parsed[0] != TURN_BEGIN:
                    continue
                text = _first_user_text(parsed[1])
                if text:
                    return truncate_with_ellipsis(text, TITLE_MAX_CHARS)
    except OSError:
        return None
    return None
