"""
OpenAI-compatible streaming chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/chat/completions`` wire
protocol -- OpenAI itself, DeepSeek, vLLM, LM Studio, etc.  Reasoning text
from models that expose it (``reasoning_content``) is surfaced as
``StreamDelta.thinking``.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from ledgerbot.errors import ModelAPIError, StreamProtocolError
from ledgerbot.llm.providers.base import Provider
from ledgerbot.llm.types import ChatMessage, StreamDelta

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com/v1",
}
DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
    "custom": "gpt-3.5-turbo",
}


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"``.  A URL
        already ending in ``/chat/completions`` is used as-is.
    model:
        Model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient failures (5xx, 429,
        connection errors) before the first byte of the stream arrives.
    transport:
        Optional ``httpx`` transport, used by tests to serve canned streams.
    """

    def __init__(
        self,
        url: str = DEFAULT_BASE_URLS["openai"],
        model: str = DEFAULT_MODELS["openai"],
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        provider_name: str = "openai",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._name = provider_name
        self._transport = transport

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        if self._url.endswith("/chat/completions"):
            return self._url
        return f"{self._url}/chat/completions"

    async def stream(
        self,
        messages: list[ChatMessage],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamDelta]:
        body = self._build_body(messages, max_tokens, temperature)
        headers = self._build_headers()
        async for delta in self._stream_request(body, headers):
            yield delta

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[ChatMessage],
        max_tokens: int,
        temperature: float,
    ) -> dict:
        body: dict = {
            "model": self._model,
            "messages": [m.to_wire() for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
        }
        logger.info(
            "REQUEST: provider=%s model=%s messages=%d max_tokens=%d",
            self._name,
            self._model,
            len(messages),
            max_tokens,
        )
        return body

    # ------------------------------------------------------------------
    # Streaming request
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _stream_request(
        self,
        body: dict,
        headers: dict[str, str],
    ) -> AsyncIterator[StreamDelta]:
        last_error: ModelAPIError | None = None
        started = False
        for attempt in range(1 + self._max_retries):
            try:
                async with self._client() as client:
                    async with client.stream(
                        "POST", self.endpoint, json=body, headers=headers
                    ) as response:
                        if response.status_code == 429 or response.status_code >= 500:
                            # Retryable -- read body so the connection is released.
                            await response.aread()
                            last_error = ModelAPIError(
                                f"HTTP {response.status_code} from {self.endpoint}",
                                status_code=response.status_code,
                            )
                            logger.warning(
                                "Retryable response (attempt %d): %s", attempt + 1, last_error
                            )
                            continue

                        if response.status_code >= 400:
                            detail = (await response.aread()).decode("utf-8", errors="replace")
                            raise ModelAPIError(
                                f"HTTP {response.status_code} from {self.endpoint}: {detail[:300]}",
                                status_code=response.status_code,
                            )

                        async for delta in self._parse_sse_stream(response):
                            started = True
                            yield delta
                        return  # success
            except httpx.TransportError as exc:
                last_error = ModelAPIError(f"Connection to {self.endpoint} failed: {exc}")
                # A stream that already produced deltas cannot be replayed.
                if not started and attempt < self._max_retries:
                    logger.warning("Transport error (attempt %d): %s", attempt + 1, exc)
                    continue
                raise last_error from exc

        if last_error is not None:
            raise last_error

    async def _parse_sse_stream(
        self, response: httpx.Response
    ) -> AsyncIterator[StreamDelta]:
        """
        Parse Server-Sent Events from the response line stream.

        Each SSE event has the form::

            data: {json}\\n\\n

        The sentinel ``data: [DONE]`` terminates the stream.
        """
        async for line in response.aiter_lines():
            line = line.rstrip("\r")
            if not line or not line.startswith("data:"):
                continue

            data_str = line[len("data:"):].strip()
            if data_str == "[DONE]":
                yield StreamDelta(is_final=True)
                return

            try:
                delta = self._sse_data_to_delta(data_str)
            except StreamProtocolError as exc:
                logger.warning("Skipping malformed SSE payload: %s", exc)
                continue

            if delta is not None:
                yield delta
                if delta.is_final:
                    return

        # If the stream ends without [DONE], emit a final delta.
        yield StreamDelta(is_final=True)

    def _sse_data_to_delta(self, data_str: str) -> StreamDelta | None:
        """Convert one SSE ``data`` payload into a ``StreamDelta``."""
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError as exc:
            raise StreamProtocolError(f"invalid JSON: {data_str[:200]}") from exc
        if not isinstance(data, dict):
            raise StreamProtocolError(f"payload is not an object: {data_str[:200]}")

        if "error" in data:
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise ModelAPIError(f"Model endpoint reported an error: {message}")

        choices = data.get("choices")
        if not choices:
            # Some gateways put reasoning at the top level.
            if data.get("reasoning_content"):
                return StreamDelta.from_wire({"reasoning_content": data["reasoning_content"]})
            return None

        if not isinstance(choices, list):
            raise StreamProtocolError(f"choices is not an array: {data_str[:200]}")
        choice = choices[0]
        if not isinstance(choice, dict):
            raise StreamProtocolError(f"choice is not an object: {data_str[:200]}")
        delta = choice.get("delta") or {}
        done = choice.get("finish_reason") is not None
        return StreamDelta.from_wire(delta, is_final=done)
