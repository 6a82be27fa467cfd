"""Abstract base class and fragment type for completion providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from ..models import Turn


@dataclass(frozen=True)
class Fragment:
    """
    One item pulled from a completion stream.
    Exactly one of `text` or `error` is set; an error fragment is terminal.
    """
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class CompletionProvider(ABC):
    """Common interface that all completion backends must satisfy."""

    name: str

    @abstractmethod
    def complete(self, history: Sequence[Turn]) -> Iterator[Fragment]:
        """
        Request a streamed answer to `history`.

        Parameters
        ----------
        history:
            Recorded turns in file order, ending with the user turn to answer.

        Returns
        -------
        A lazy iterator of Fragments. It ends when the remote side finishes
        the response, or after yielding a single error Fragment. Transport
        failures must be reported that way rather than raised.
        """
        ...
