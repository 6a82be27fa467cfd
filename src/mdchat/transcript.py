"""
Transcript parsing.

A transcript is plain text: blocks of lines separated by a delimiter line
whose trimmed content is exactly DELIMITER.

    What is 2+2?
    ===
    4
    ===

Blocks alternate user / assistant starting with the user. A trailing block
with no delimiter after it is unterminated; when it belongs to the user it is
a pending question waiting to be sent.
"""

from __future__ import annotations

from pathlib import Path

from .models import Role, TranscriptState, Turn

DELIMITER = "==="


class ParseError(Exception):
    """The transcript exists but could not be read or decoded."""

    def __init__(self, path: Path, cause: Exception) -> None:
        super().__init__(f"could not read transcript {path}: {cause}")
        self.path = path
        self.cause = cause


def is_delimiter(line: str) -> bool:
    return line.strip() == DELIMITER


def parse_transcript(path: Path) -> TranscriptState:
    """
    Rebuild the turn list from the file at `path`.

    A missing file is an empty transcript. Delimiters that close a blank block
    are ignored: they neither commit a turn nor flip the role, so doubled
    delimiters never desynchronise the user/assistant alternation.

    Raises ParseError for any other read or decode failure.
    """
    turns: list[Turn] = []
    role = Role.USER
    buffer: list[str] = []

    try:
        with path.open("r", encoding="utf-8") as f:
            for raw in f:
                line = raw.rstrip("\n")
                if not is_delimiter(line):
                    buffer.append(line + "\n")
                    continue

                block = "".join(buffer)
                if not block.strip():
                    continue
                turns.append(Turn(role=role, content=block.rstrip("\n")))
                buffer.clear()
                role = role.flipped()
    except FileNotFoundError:
        return TranscriptState()
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(path, exc) from exc

    pending_user_turn = False
    block = "".join(buffer)
    if block.strip():
        # Unterminated trailing block keeps the role it started under
        turns.append(Turn(role=role, content=block.rstrip("\n")))
        pending_user_turn = role is Role.USER

    return TranscriptState(turns=turns, pending_user_turn=pending_user_turn)
