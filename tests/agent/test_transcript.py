"""
Unit tests for transcript reconstruction and session titles.
"""

import json

import pytest

from agentdesk.domain.errors import ArgumentError
from agentdesk.sessions.transcript import (
    TranscriptReconstructor,
    extract_session_title,
    load_transcript,
    reconstruct_transcript,
    session_dir,
    truncate_with_ellipsis,
    validate_session_id,
)


def record(kind, **payload):
    return json.dumps({"timestamp": 1700000000.0, "message": {"type": kind, "payload": payload}})


def turn_begin(text):
    return record("TurnBegin", user_input=[{"type": "text", "text": text}])


def text_part(text):
    return record("ContentPart", type="text", text=text)


class TestReconstruction:
    """Tests for replaying wire records."""

    def test_single_turn(self):
        lines = [
            turn_begin("hi"),
            text_part("hello "),
            text_part("world"),
            record("TurnEnd"),
        ]

        messages = reconstruct_transcript(lines)

        assert [(m.role, m.content) for m in messages] == [
            ("user", "hi"),
            ("assistant", "hello world"),
        ]

    def test_step_end_splits_assistant_messages(self):
        lines = [
            turn_begin("list files"),
            text_part("Let me look."),
            record("ToolCall", id="call_1", function={"name": "Shell"}),
            record("StepEnd"),
            text_part("There are two files."),
            record("TurnEnd"),
        ]

        messages = reconstruct_transcript(lines)

        assert [m.content for m in messages] == [
            "list files",
            "Let me look.",
            "There are two files.",
        ]

    def test_multiple_turns(self):
        lines = [
            turn_begin("one"),
            text_part("1"),
            record("TurnEnd"),
            turn_begin("two"),
            text_part("2"),
            record("TurnEnd"),
        ]

        assert [m.role for m in reconstruct_transcript(lines)] == [
            "user",
            "assistant",
            "user",
            "assistant",
        ]

    def test_unterminated_turn_is_flushed(self):
        messages = reconstruct_transcript([turn_begin("hi"), text_part("partial")])
        assert messages[-1].content == "partial"

    def test_content_before_turn_is_ignored(self):
        messages = reconstruct_transcript([text_part("stray"), turn_begin("hi")])
        assert [m.content for m in messages] == ["hi"]

    def test_non_text_parts_are_ignored(self):
        lines = [
            turn_begin("hi"),
            record("ContentPart", type="think", think="pondering"),
            text_part("answer"),
            record("TurnEnd"),
        ]
        assert [m.content for m in reconstruct_transcript(lines)] == ["hi", "answer"]

    @pytest.mark.parametrize(
        "garbage",
        [
            "",
            "   ",
            "not json",
            '{"message": ',
            "[1, 2, 3]",
            '{"message": "TurnBegin"}',
            '{"message": {"type": 7}}',
            '{"other": {}}',
        ],
    )
    def test_malformed_trailing_lines(self, garbage):
        lines = [turn_begin("hi"), text_part("hello"), record("TurnEnd"), garbage]

        messages = reconstruct_transcript(lines)

        assert [(m.role, m.content) for m in messages] == [
            ("user", "hi"),
            ("assistant", "hello"),
        ]

    def test_feed_one_line_at_a_time(self):
        reconstructor = TranscriptReconstructor()
        reconstructor.feed(turn_begin("hi"))
        reconstructor.feed(text_part("yo"))
        assert len(reconstructor.messages) == 1
        assert len(reconstructor.finish()) == 2


class TestFiles:
    """Tests for reading wire files from disk."""

    def test_missing_file(self, tmp_path):
        assert load_transcript(tmp_path / "wire.jsonl") == []

    def test_load_transcript(self, tmp_path):
        wire = tmp_path / "wire.jsonl"
        wire.write_text("\n".join([turn_begin("hi"), text_part("there"), "{broken"]) + "\n")

        assert [m.content for m in load_transcript(wire)] == ["hi", "there"]

    def test_title_from_first_turn(self, tmp_path):
        wire = tmp_path / "wire.jsonl"
        wire.write_text("\n".join([record("Init"), turn_begin("Fix the build"), turn_begin("x")]))

        assert extract_session_title(wire) == "Fix the build"

    def test_long_title_truncated(self, tmp_path):
        wire = tmp_path / "wire.jsonl"
        wire.write_text(turn_begin("a" * 80) + "\n")

        title = extract_session_title(wire)

        assert len(title) == 50
        assert title.endswith("...")

    def test_title_only_within_first_lines(self, tmp_path):
        wire = tmp_path / "wire.jsonl"
        filler = [record("StatusUpdate")] * 50
        wire.write_text("\n".join(filler + [turn_begin("too late")]))

        assert extract_session_title(wire) is None


class TestHelpers:
    """Tests for small helpers."""

    def test_truncate_with_ellipsis(self):
        assert truncate_with_ellipsis("short", 50) == "short"
        assert truncate_with_ellipsis("abcdefghij", 8) == "abcde..."

    def test_session_dir_hashes_work_dir(self, tmp_path):
        local = session_dir(tmp_path, "/repo", "abc")
        remote = session_dir(tmp_path, "/repo", "abc", kaos="ssh")

        assert local.parent.parent == tmp_path / "sessions"
        assert len(local.parent.name) == 32
        assert remote.parent.name == f"ssh_{local.parent.name}"

    @pytest.mark.parametrize("session_id", ["", ".", "..", "../x", "a/b", "a\\b", "nul\x00"])
    def test_session_dir_rejects_path_like_ids(self, tmp_path, session_id):
        with pytest.raises(ArgumentError):
            session_dir(tmp_path, "/repo", session_id)

    def test_plain_ids_accepted(self):
        assert validate_session_id("2f1c-9a.draft") == "2f1c-9a.draft"
