"""
Session Store.

Owns the live map of GUI sessions and their durable form under
``<share>/gui_sessions``:
- ``<id>.json``            pretty-printed metadata
- ``<id>_messages.jsonl``  one message per line, append-only

Also reads sessions recorded by the CLI (``<share>/sessions/...``) so the
session picker and history view can show both. The in-memory map is
guarded by a lock that is only held for synchronous work; an unavailable
lock or a failed write raises StoreUnavailableError for that operation.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from ..domain.entities import Message, Session, SessionInfo
from ..domain.errors import ArgumentError, StoreUnavailableError
from .transcript import (
    WIRE_FILE,
    extract_session_title,
    load_transcript,
    session_dir,
    sessions_root,
    validate_session_id,
)

logger = logging.getLogger(__name__)

GUI_SESSIONS_DIR = "gui_sessions"
METADATA_FILE = "kimi.json"
MIN_WIRE_BYTES = 100


def _same_dir(a: str, b: str) -> bool:
    if a == b:
        return True
    try:
        return Path(a).resolve() == Path(b).resolve()
    except OSError:
        return False


class SessionStore:
    """Durable GUI sessions plus read access to CLI sessions.

    Usage:
        store = SessionStore(share_dir=Path.home() / ".kimi")

        session = store.get_or_create("s1", "Fix the tests", "/repo")
        store.add_message("s1", Message(role="user", content="Fix the tests"))

        infos = store.list_sessions(work_dir="/repo")
        messages = store.get_messages("/repo", "s1")
    """

    def __init__(self, share_dir: Path, lock_timeout: float = 5.0):
        """Initialize the store.

        Args:
            share_dir: Root data directory (``~/.kimi`` by default)
            lock_timeout: Seconds to wait for the session map lock
        """
        self.share_dir = Path(share_dir)
        self.data_dir = self.share_dir / GUI_SESSIONS_DIR
        self.lock_timeout = lock_timeout
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise StoreUnavailableError("Session store is unavailable", store="sessions")
        try:
            yield
        finally:
            self._lock.release()

    # ============================================
    # Paths
    # ============================================

    def metadata_path(self, session_id: str) -> Path:
        """Metadata file of a session.

        Raises:
            ArgumentError: ``session_id`` is not a plain path component
        """
        return self.data_dir / f"{validate_session_id(session_id)}.json"

    def messages_path(self, session_id: str) -> Path:
        return self.data_dir / f"{validate_session_id(session_id)}_messages.jsonl"

    # ============================================
    # GUI Sessions
    # ============================================

    def get_or_create(self, session_id: str, title: str, work_dir: str) -> Session:
        """Return the session, creating and persisting it if it is new."""
        with self._locked():
            session = self._sessions.get(session_id)
            if session is None:
                session = self._read_session(self.metadata_path(session_id))
            if session is None:
                session = Session(id=session_id, title=title, work_dir=work_dir)
                self._write_metadata(session)
                logger.info(f"Created session {session_id}")
            self._sessions[session_id] = session
            return session

    def add_message(self, session_id: str, message: Message) -> None:
        """Append a message to a session's log and bump its ``updated_at``.

        Raises:
            StoreUnavailableError: The message could not be written
        """
        with self._locked():
            self._append_message(session_id, message)
            session = self._sessions.get(session_id)
            if session is not None:
                session.add_message(message)
                self._write_metadata(session)

    def touch(self, session_id: str) -> None:
        """Bump ``updated_at`` for a known session."""
        with self._locked():
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.touch()
            self._write_metadata(session)

    def get(self, session_id: str) -> Optional[Session]:
        with self._locked():
            return self._sessions.get(session_id)

    def load_all(self) -> list[Session]:
        """Load every GUI session from disk and refresh the in-memory map."""
        sessions: list[Session] = []
        if self.data_dir.is_dir():
            for path in sorted(self.data_dir.glob("*.json")):
                session = self._read_session(path)
                if session is not None:
                    sessions.append(session)

        with self._locked():
            for session in sessions:
                self._sessions[session.id] = session
        return sessions

    def get_messages(self, work_dir: str, session_id: str) -> list[Message]:
        """Messages of a session.

        Looks in memory first, then the GUI session files, then the CLI
        transcript for the working directory.
        """
        with self._locked():
            session = self._sessions.get(session_id)
            if session is not None:
                return list(session.messages)

        for session in self.load_all():
            if session.id == session_id:
                return list(session.messages)

        return load_transcript(session_dir(self.share_dir, work_dir, session_id) / WIRE_FILE)

    def list_sessions(self, work_dir: Optional[str] = None) -> list[SessionInfo]:
        """Sessions for the picker, newest first, one entry per id.

        With ``work_dir`` the CLI sessions of that directory are merged in
        and GUI sessions are filtered to it.
        """
        infos: list[SessionInfo] = []
        if work_dir:
            infos.extend(self.list_cli_sessions(work_dir))

        for session in self.load_all():
            if work_dir and not _same_dir(session.work_dir, work_dir):
                continue
            infos.append(
                SessionInfo(
                    id=session.id,
                    title=session.title,
                    updated_at=float(session.updated_at),
                    work_dir=session.work_dir,
                )
            )

        infos.sort(key=lambda info: info.updated_at, reverse=True)
        seen: set[str] = set()
        unique = []
        for info in infos:
            if info.id not in seen:
                seen.add(info.id)
                unique.append(info)
        return unique

    def delete(self, work_dir: str, session_id: str) -> None:
        """Remove a session's metadata, message log and CLI directory.

        Raises:
            StoreUnavailableError: A file could not be removed
            ArgumentError: ``session_id`` is not a plain path component
        """
        validate_session_id(session_id)
        with self._locked():
            self._sessions.pop(session_id, None)
            try:
                for path in (self.metadata_path(session_id), self.messages_path(session_id)):
                    if path.exists():
                        path.unlink()
                for kaos in self._kaos_for(work_dir):
                    cli_dir = session_dir(self.share_dir, work_dir, session_id, kaos)
                    if cli_dir.is_dir():
                        shutil.rmtree(cli_dir)
            except OSError as e:
                raise StoreUnavailableError(
                    f"Failed to delete session {session_id}: {e}",
                    store="sessions",
                    cause=e,
                ) from e
        logger.info(f"Deleted session {session_id}")

    # ============================================
    # CLI Sessions
    # ============================================

    def list_cli_sessions(self, work_dir: str) -> list[SessionInfo]:
        """CLI sessions registered for ``work_dir`` in ``kimi.json``."""
        sessions: list[SessionInfo] = []
        for entry in self._work_dir_entries():
            if entry.get("path") != work_dir:
                continue
            kaos = entry.get("kaos") or "local"
            root = sessions_root(self.share_dir, work_dir, kaos)
            if not root.is_dir():
                break

            for child in root.iterdir():
                wire = child / WIRE_FILE
                try:
                    if not child.is_dir() or not wire.is_file():
                        continue
                    stat = wire.stat()
                except OSError:
                    continue
                if stat.st_size < MIN_WIRE_BYTES:
                    continue

                title = extract_session_title(wire) or f"Session {child.name[:8]}"
                sessions.append(
                    SessionInfo(
                        id=child.name,
                        title=title,
                        updated_at=stat.st_mtime,
                        work_dir=work_dir,
                    )
                )
            break

        sessions.sort(key=lambda info: info.updated_at, reverse=True)
        return sessions

    def _work_dir_entries(self) -> list[dict[str, Any]]:
        path = self.share_dir / METADATA_FILE
        if not path.is_file():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable {path}: {e}")
            return []
        entries = data.get("work_dirs") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return []
        return [e for e in entries if isinstance(e, dict)]

    def _kaos_for(self, work_dir: str) -> list[str]:
        kinds = [
            e.get("kaos") or "local"
            for e in self._work_dir_entries()
            if e.get("path") == work_dir
        ]
        return kinds or ["local"]

    # ============================================
    # File I/O
    # ============================================

    def _ensure_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(
                f"Cannot create {self.data_dir}: {e}", store="sessions", cause=e
            ) from e

    def _write_metadata(self, session: Session) -> None:
        self._ensure_dir()
        path = self.metadata_path(session.id)
        tmp = path.parent / (path.name + ".tmp")
        try:
            tmp.write_text(json.dumps(session.to_metadata(), indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StoreUnavailableError(
                f"Failed to write session file: {e}", store="sessions", cause=e
            ) from e

    def _append_message(self, session_id: str, message: Message) -> None:
        self._ensure_dir()
        line = json.dumps(message.to_dict(), ensure_ascii=False)
        try:
            with open(self.messages_path(session_id), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise StoreUnavailableError(
                f"Failed to write message: {e}", store="sessions", cause=e
            ) from e

    def _read_session(self, path: Path) -> Optional[Session]:
        """Load one session from its metadata file, or None if unusable."""
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            session = Session(
                id=validate_session_id(str(data["id"])),
                title=str(data["title"]),
                work_dir=str(data["work_dir"]),
                created_at=int(data["created_at"]),
                updated_at=int(data["updated_at"]),
            )
        except (
            OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, ArgumentError
        ) as e:
            logger.warning(f"Skipping unreadable session file {path}: {e}")
            return None

        session.messages = self._read_messages(session.id)
        return session

    def _read_messages(self, session_id: str) -> list[Message]:
        path = self.messages_path(session_id)
        if not path.is_file():
            return []

        messages = []
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        messages.append(Message.from_dict(json.loads(line)))
                    except (json.JSONDecodeError, ValueError, AttributeError):
                        continue
        except OSError as e:
            logger.warning(f"Cannot read messages for session {session_id}: {e}")
        return messages
