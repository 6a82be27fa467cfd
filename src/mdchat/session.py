"""
Streaming session controller.

One session answers one transcript:
  1. Decide whether there is anything to send.
  2. Close a pending user block with a delimiter before the request goes out,
     so the file already shows "user turn closed, answer pending" if the
     request fails or is interrupted.
  3. Pull fragments one at a time; each goes to the display and then to the
     transcript file before the next is pulled.
  4. Finalize: close the assistant turn only if content actually streamed.

Stream errors are recovered here: the cause is written into the transcript
and the session still finalizes.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Iterable, Optional, Sequence

from .models import Outcome, TranscriptState, Turn
from .providers.base import Fragment
from .sink import DisplaySink, TurnSink

logger = logging.getLogger(__name__)

CompleteFn = Callable[[Sequence[Turn]], Iterable[Fragment]]


@dataclass
class SessionResult:
    outcome: Outcome
    # Concatenation of every streamed text fragment
    text: str = ""
    error: Optional[str] = None


def has_work(state: TranscriptState) -> bool:
    """
    False only when the transcript has no turns and no pending user content.

    A transcript ending in an assistant turn (including one cut short by an
    [Error: ...] line) is sent again so a failed request can be retried.
    """
    return not state.is_empty


def run_session(
    state: TranscriptState,
    complete: CompleteFn,
    sink: TurnSink,
    display: DisplaySink,
) -> SessionResult:
    if not has_work(state):
        logger.debug("Nothing to send (%d turns)", len(state.turns))
        return SessionResult(outcome=Outcome.NOTHING_TO_SEND)

    if state.pending_user_turn:
        sink.write_delimiter()

    logger.debug("Sending %d turns", len(state.turns))
    assistant_started = False
    parts: list[str] = []
    error: Optional[str] = None

    for fragment in complete(state.turns):
        if fragment.failed:
            error = fragment.error
            sink.write_error(error)
            break
        if not fragment.text:
            continue

        assistant_started = True
        parts.append(fragment.text)
        display.write(fragment.text)
        display.flush()
        sink.write_fragment(fragment.text)

    sink.finalize(assistant_started)
    if assistant_started:
        display.write("\n")
        display.flush()

    text = "".join(parts)
    if error is not None:
        outcome = Outcome.STREAM_ERROR
    elif assistant_started:
        outcome = Outcome.COMPLETED
    else:
        outcome = Outcome.EMPTY_RESPONSE
    logger.debug("Session finished: %s (%d characters)", outcome.value, len(text))
    return SessionResult(outcome=outcome, text=text, error=error)
