"""Session persistence.

Provides:
- Durable GUI session store with CLI session listing
- Transcript reconstruction from CLI wire logs
"""

from .store import SessionStore
from .transcript import (
    TranscriptReconstructor,
    extract_session_title,
    load_transcript,
    reconstruct_transcript,
    session_dir,
    truncate_with_ellipsis,
    validate_session_id,
)

__all__ = [
    "SessionStore",
    "TranscriptReconstructor",
    "extract_session_title",
    "load_transcript",
    "reconstruct_transcript",
    "session_dir",
    "truncate_with_ellipsis",
    "validate_session_id",
]
