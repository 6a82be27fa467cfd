"""Pydantic models for mdchat transcripts and endpoint selection."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    """Who wrote a turn. Values match the chat-completions message roles."""
    USER = "user"
    ASSISTANT = "assistant"

    def flipped(self) -> "Role":
        return Role.ASSISTANT if self is Role.USER else Role.USER


class Outcome(str, Enum):
    """How a streaming session ended."""
    # Empty transcript: no turns and no pending user content
    NOTHING_TO_SEND = "nothing_to_send"
    # At least one fragment streamed and the closing delimiter was written
    COMPLETED = "completed"
    # Stream finished without any content; transcript left awaiting an answer
    EMPTY_RESPONSE = "empty_response"
    # An error fragment stopped the stream; diagnostic recorded in the file
    STREAM_ERROR = "stream_error"


class Turn(BaseModel):
    """One recorded message in the transcript."""
    model_config = ConfigDict(frozen=True)

    role: Role
    # Block text with its trailing newlines removed
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content.strip()}


class TranscriptState(BaseModel):
    """
    Result of parsing a transcript file.
    Built fresh from disk on every run; never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    turns: list[Turn] = []
    # True iff the trailing unterminated block is user content
    pending_user_turn: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.turns and not self.pending_user_turn

    @property
    def awaiting_reply(self) -> bool:
        return bool(self.turns) and self.turns[-1].role is Role.USER


class EndpointConfig(BaseModel):
    """One `[openai_endpoints.<name>]` table from the configuration."""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    default_model: Optional[str] = None


class ResolvedEndpoint(BaseModel):
    """
    Endpoint settings resolved once before a session starts.
    None for api_key / api_base means "let the SDK read its own defaults".
    """
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    model: str
    # Human-readable description of where these settings came from
    source: str
