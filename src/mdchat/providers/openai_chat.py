"""
OpenAI-compatible chat completions provider.

Works against api.openai.com or any server exposing the same
`/chat/completions` streaming API (set `api_base` on the endpoint).

Each streamed chunk looks like:
  {"choices": [{"delta": {"content": "Hel"}, "finish_reason": null}], ...}

All choice deltas of one chunk are joined into a single Fragment, so the
caller flushes its sinks once per chunk.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence

import openai

from .base import CompletionProvider, Fragment
from ..models import ResolvedEndpoint, Turn

logger = logging.getLogger(__name__)


class OpenAIChatProvider(CompletionProvider):
    name = "openai"

    def __init__(
        self,
        endpoint: ResolvedEndpoint,
        client: Optional[openai.OpenAI] = None,
    ) -> None:
        """
        Raises openai.OpenAIError when no client can be built, e.g. no API key
        in the endpoint config nor in OPENAI_API_KEY.
        """
        self.endpoint = endpoint
        if client is None:
            client_kwargs = {}
            if endpoint.api_key:
                client_kwargs["api_key"] = endpoint.api_key
            if endpoint.api_base:
                client_kwargs["base_url"] = endpoint.api_base
            client = openai.OpenAI(**client_kwargs)
        self._client = client

    def complete(self, history: Sequence[Turn]) -> Iterator[Fragment]:
        messages = [turn.as_message() for turn in history]
        return self._stream(messages)

    def _stream(self, messages: list[dict[str, str]]) -> Iterator[Fragment]:
        logger.info(
            "Requesting completion: model=%s messages=%d",
            self.endpoint.model,
            len(messages),
        )
        received = 0
        try:
            response = self._client.chat.completions.create(
                model=self.endpoint.model,
                messages=messages,
                stream=True,
            )
            for chunk in response:
                text = "".join(
                    choice.delta.content or ""
                    for choice in chunk.choices
                    if choice.delta is not None
                )
                if text:
                    received += len(text)
                    yield Fragment(text=text)
        except openai.OpenAIError as exc:
            logger.info("Completion stream failed after %d characters: %s", received, exc)
            yield Fragment(error=str(exc))
            return

        logger.info("Completion finished: %d characters", received)
