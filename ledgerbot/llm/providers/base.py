"""Abstract base class for model transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from ledgerbot.llm.types import ChatMessage, StreamDelta


class Provider(ABC):
    """
    A provider streams one chat completion from a single model endpoint.

    Implementations must:
      - Yield ``StreamDelta`` objects in arrival order, the last one with
        ``is_final=True``.
      - Raise ``ModelAPIError`` for connection, HTTP and authentication
        failures instead of mixing them into the delta stream.
    """

    @abstractmethod
    async def stream(
        self,
        messages: list[ChatMessage],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        """Start a streaming completion."""
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        if False:  # pragma: no cover
            yield StreamDelta()  # type: ignore[misc]

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai"``)."""
        ...

    @property
    def model(self) -> str | None:
        return None
