"""
Append-only sinks for streamed assistant text.

TurnSink commits delimiters and fragments to the transcript file. Every write
is flushed immediately so an interrupted session leaves the file at a
fragment boundary. The file is only ever appended to; earlier turns are
never rewritten.

TextDisplay echoes the same fragments to the operator's terminal.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Protocol, TextIO

from .transcript import DELIMITER


class DisplaySink(Protocol):
    """Live destination for streamed text."""

    def write(self, text: str) -> None: ...
    def flush(self) -> None: ...


class TextDisplay:
    """DisplaySink over a text stream (stdout unless told otherwise)."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so test runners that swap sys.stdout are honoured
        return self._stream if self._stream is not None else sys.stdout

    def write(self, text: str) -> None:
        self.stream.write(text)

    def flush(self) -> None:
        self.stream.flush()


class TurnSink:
    """
    Append-mode writer for one transcript file.

    Use as a context manager. The file is opened (and created if absent) on
    the first write, so a session that ends up writing nothing leaves the
    filesystem untouched.
    """

    def __init__(self, path: Path, delimiter: str = DELIMITER) -> None:
        self.path = path
        self.delimiter = delimiter
        self.error_recorded = False
        self._handle: Optional[TextIO] = None

    def __enter__(self) -> "TurnSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _writer(self) -> TextIO:
        if self._handle is None:
            needs_newline = _ends_without_newline(self.path)
            self._handle = self.path.open("a", encoding="utf-8", newline="")
            if needs_newline:
                # Keep whatever we append on its own line
                self._handle.write("\n")
        return self._handle

    def _commit(self, text: str) -> None:
        handle = self._writer()
        handle.write(text)
        handle.flush()

    def write_delimiter(self) -> None:
        self._commit(f"{self.delimiter}\n")

    def write_fragment(self, text: str) -> None:
        self._commit(text)

    def write_error(self, cause: str) -> None:
        """Record a stream failure so it is visible the next time the file is opened."""
        self.error_recorded = True
        self._commit(f"\n[Error: {cause}]\n")

    def finalize(self, assistant_started: bool) -> None:
        """
        Close the assistant turn with a delimiter.

        Nothing is written when no content streamed (the transcript stays
        "awaiting an answer") or when the stream failed (the error line
        stays last).
        """
        if assistant_started and not self.error_recorded:
            self._commit(f"\n{self.delimiter}\n")

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


def _ends_without_newline(path: Path) -> bool:
    try:
        with path.open("rb") as f:
            f.seek(0, 2)
            if f.tell() == 0:
                return False
            f.seek(-1, 2)
            return f.read(1) != b"\n"
    except FileNotFoundError:
        return False
