"""
Tests for session.py: driving a fragment stream into the display and file.

The completion source is a plain function returning Fragments, so no network
or SDK objects are involved.
"""

import io

from mdchat.models import Outcome, Role, TranscriptState, Turn
from mdchat.providers.base import Fragment
from mdchat.session import has_work, run_session
from mdchat.sink import TextDisplay, TurnSink
from mdchat.transcript import parse_transcript


def _source(*fragments):
    calls: list[list[Turn]] = []

    def complete(history):
        calls.append(list(history))
        return iter(fragments)

    return complete, calls


def _run(path, complete):
    state = parse_transcript(path)
    display = io.StringIO()
    with TurnSink(path) as sink:
        result = run_session(state, complete, sink, TextDisplay(display))
    return result, display.getvalue()


def test_fresh_question_end_to_end(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("What is 2+2?\n")
    complete, calls = _source(Fragment(text="4"))

    result, shown = _run(path, complete)

    assert result.outcome == Outcome.COMPLETED
    assert result.text == "4"
    assert path.read_text() == "What is 2+2?\n===\n4\n===\n"
    assert shown == "4\n"
    assert calls == [[Turn(role=Role.USER, content="What is 2+2?")]]


def test_round_trip_adds_one_assistant_turn(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("hi\n===\nhello\n===\nexplain streams\n")
    before = parse_transcript(path)
    complete, _ = _source(
        Fragment(text="Streams "),
        Fragment(text="deliver data\n"),
        Fragment(text="incrementally."),
    )

    result, _ = _run(path, complete)
    after = parse_transcript(path)

    assert result.outcome == Outcome.COMPLETED
    assert after.pending_user_turn is False
    assert after.turns == before.turns + [
        Turn(role=Role.ASSISTANT, content="Streams deliver data\nincrementally."),
    ]


def test_display_matches_streamed_file_bytes(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    complete, _ = _source(Fragment(text="a"), Fragment(text="b\n"), Fragment(text="c"))

    _, shown = _run(path, complete)

    # The display never sees the delimiters written around the answer
    assert path.read_text() == "q\n===\n" + "ab\nc" + "\n===\n"
    assert shown == "ab\nc\n"


def test_display_is_written_before_file_per_fragment(isolated_dir):
    events: list[str] = []

    class RecordingDisplay:
        def write(self, text):
            events.append(f"display:{text}")

        def flush(self):
            pass

    class RecordingSink(TurnSink):
        def write_fragment(self, text):
            events.append(f"file:{text}")
            super().write_fragment(text)

    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    complete, _ = _source(Fragment(text="x"), Fragment(text="y"))

    with RecordingSink(path) as sink:
        run_session(parse_transcript(path), complete, sink, RecordingDisplay())

    assert events == ["display:x", "file:x", "display:y", "file:y", "display:\n"]


def test_stream_failure_records_error_without_closing(isolated_dir, monkeypatch):
    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    complete, _ = _source(
        Fragment(text="partial"),
        Fragment(error="connection reset"),
        Fragment(text="never pulled"),
    )
    finalize_calls: list[bool] = []
    original_finalize = TurnSink.finalize

    def spy_finalize(self, assistant_started):
        finalize_calls.append(assistant_started)
        original_finalize(self, assistant_started)

    monkeypatch.setattr(TurnSink, "finalize", spy_finalize)

    result, shown = _run(path, complete)

    assert result.outcome == Outcome.STREAM_ERROR
    assert result.error == "connection reset"
    assert result.text == "partial"
    assert path.read_text().endswith("partial\n[Error: connection reset]\n")
    assert finalize_calls == [True]
    assert "Error" not in shown


def test_error_before_any_content(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    complete, _ = _source(Fragment(error="401 unauthorized"))

    result, shown = _run(path, complete)

    assert result.outcome == Outcome.STREAM_ERROR
    assert path.read_text() == "q\n===\n\n[Error: 401 unauthorized]\n"
    assert shown == ""


def test_no_content_leaves_opening_delimiter_only(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    complete, _ = _source()

    result, shown = _run(path, complete)

    assert result.outcome == Outcome.EMPTY_RESPONSE
    assert result.error is None
    assert path.read_text() == "q\n===\n"
    assert shown == ""


def test_empty_text_fragments_do_not_start_the_answer(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    complete, _ = _source(Fragment(text=""), Fragment(text=""))

    result, _ = _run(path, complete)

    assert result.outcome == Outcome.EMPTY_RESPONSE
    assert path.read_text() == "q\n===\n"


def test_retry_after_empty_response_appends_answer(isolated_dir):
    path = isolated_dir / "chat.md"
    # Left behind by a previous run that got no content
    path.write_text("q\n===\n")
    complete, calls = _source(Fragment(text="a"))

    result, _ = _run(path, complete)

    assert result.outcome == Outcome.COMPLETED
    assert calls == [[Turn(role=Role.USER, content="q")]]
    assert path.read_text() == "q\n===\na\n===\n"


def test_nothing_to_send_skips_call_and_file(isolated_dir):
    path = isolated_dir / "chat.md"
    complete, calls = _source(Fragment(text="unused"))

    result, shown = _run(path, complete)

    assert result.outcome == Outcome.NOTHING_TO_SEND
    assert calls == []
    assert not path.exists()
    assert shown == ""


def test_transcript_ending_with_answer_is_sent_again(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("q\n===\na\n===\n")
    complete, calls = _source(Fragment(text="b"))

    result, _ = _run(path, complete)

    assert result.outcome == Outcome.COMPLETED
    assert calls == [[Turn(role=Role.USER, content="q"), Turn(role=Role.ASSISTANT, content="a")]]
    # No opening delimiter: nothing was pending
    assert path.read_text() == "q\n===\na\n===\nb\n===\n"


def test_request_error_then_retry_calls_source_again(isolated_dir):
    path = isolated_dir / "chat.md"
    path.write_text("q\n")
    failing, _ = _source(Fragment(error="Connection error."))
    _run(path, failing)
    assert path.read_text() == "q\n===\n\n[Error: Connection error.]\n"

    complete, calls = _source(Fragment(text="4"))
    result, _ = _run(path, complete)

    assert result.outcome == Outcome.COMPLETED
    assert len(calls) == 1
    assert calls[0][0] == Turn(role=Role.USER, content="q")
    assert path.read_text().endswith("[Error: Connection error.]\n4\n===\n")


def test_has_work():
    user = Turn(role=Role.USER, content="q")
    assistant = Turn(role=Role.ASSISTANT, content="a")
    assert has_work(TranscriptState()) is False
    assert has_work(TranscriptState(turns=[user], pending_user_turn=True)) is True
    assert has_work(TranscriptState(turns=[user], pending_user_turn=False)) is True
    assert has_work(TranscriptState(turns=[user, assistant])) is True
