"""
OpenAI-compatible gateway client.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol -- OpenAI itself, DeepSeek, vLLM, Ollama, LM Studio, etc.  All
providers share one code path; they differ only in endpoint, credential
and model list.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from llmgate.config import GatewayConfig
from llmgate.errors import LLMError, TransportError, UpstreamError
from llmgate.llm.parser import parse_response
from llmgate.llm.registry import ProviderRegistry, ResolvedProvider
from llmgate.llm.retry import RetryPolicy
from llmgate.llm.stream_decoder import StreamDecoder, aiter_sse_lines
from llmgate.llm.translator import build_request
from llmgate.llm.types import ChatRequest, ChatResponse, StreamChunk, ToolCall

logger = logging.getLogger(__name__)

CHAT_PATH = "chat/completions"
MODE_SYNC = "sync"
MODE_STREAM = "stream"

# Upstream error bodies are truncated to this many characters.
_MAX_ERROR_BODY = 2000


class LLMClient:
    """
    Synchronous and streaming chat against the configured providers.

    Parameters
    ----------
    config:
        Resolved configuration snapshot.
    transport:
        Optional ``httpx`` transport for every provider client.
    sleep:
        Optional coroutine used between retries (tests pass a recorder).
    forward_tool_choice_on_stream:
        Whether ``tool_choice`` is sent on streaming requests.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep=None,
        forward_tool_choice_on_stream: bool = True,
    ) -> None:
        self._config = config
        self._registry = ProviderRegistry(config, transport=transport)
        self._sync_retry = RetryPolicy.from_config(config.retry, sleep=sleep)
        self._stream_retry = RetryPolicy.from_config(
            config.retry, stream=True, sleep=sleep
        )
        self._forward_tool_choice_on_stream = forward_tool_choice_on_stream

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    async def aclose(self) -> None:
        await self._registry.aclose()

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _prepare(
        self, request: ChatRequest, provider_id: str | None, stream: bool
    ) -> tuple[ResolvedProvider, dict]:
        resolved = self._registry.resolve(provider_id)
        body = build_request(
            request,
            resolved.provider_id,
            resolved.default_model,
            stream=stream,
            default_temperature=self._config.temperature,
            default_max_tokens=self._config.max_tokens,
            forward_tool_choice_on_stream=self._forward_tool_choice_on_stream,
        )
        return resolved, body

    @staticmethod
    def _transport_error(
        exc: httpx.HTTPError, provider: str, mode: str
    ) -> TransportError:
        return TransportError(
            f"{type(exc).__name__}: {exc}",
            timeout=isinstance(exc, httpx.TimeoutException),
            provider=provider,
            mode=mode,
        )

    @staticmethod
    def _upstream_error(
        response: httpx.Response, provider: str, mode: str
    ) -> UpstreamError:
        body = response.text[:_MAX_ERROR_BODY]
        return UpstreamError(
            f"HTTP {response.status_code}: {body[:200]}",
            status_code=response.status_code,
            body=body,
            provider=provider,
            mode=mode,
        )

    # ------------------------------------------------------------------
    # Non-streaming request
    # ------------------------------------------------------------------

    async def chat(
        self, request: ChatRequest, provider_id: str | None = None
    ) -> ChatResponse:
        """
        Send *request* and wait for the complete response.

        Raises ``ConfigurationError``, ``UpstreamError``, ``ProtocolError``,
        ``TransportError`` or ``RetryExhaustedError``.
        """
        resolved, body = self._prepare(request, provider_id, stream=False)
        pid = resolved.provider_id

        async def attempt() -> ChatResponse:
            try:
                resp = await resolved.client.post(CHAT_PATH, json=body)
            except httpx.HTTPError as exc:
                raise self._transport_error(exc, pid, MODE_SYNC) from exc

            if not resp.is_success:
                raise self._upstream_error(resp, pid, MODE_SYNC)

            try:
                return parse_response(resp.content)
            except LLMError as exc:
                exc.provider = pid
                exc.mode = MODE_SYNC
                logger.error("Failed to parse LLM response: %s", resp.text[:200])
                raise

        return await self._sync_retry.run(attempt, provider=pid, mode=MODE_SYNC)

    # ------------------------------------------------------------------
    # Streaming request
    # ------------------------------------------------------------------

    def stream(
        self, request: ChatRequest, provider_id: str | None = None
    ) -> AsyncIterator[StreamChunk]:
        """
        Start a streaming call.

        Configuration errors raise here, before any chunk.  Everything else
        ends the returned sequence with a ``done=True`` chunk whose
        ``finish_reason`` is ``"error"`` and whose ``error`` holds the typed
        exception.  Closing the iterator early closes the connection.
        """
        resolved, body = self._prepare(request, provider_id, stream=True)
        return self._stream(resolved, body)

    async def _open_stream(
        self, resolved: ResolvedProvider, body: dict
    ) -> httpx.Response:
        pid = resolved.provider_id
        http_request = resolved.client.build_request(
            "POST",
            CHAT_PATH,
            json=body,
            headers={"Accept": "text/event-stream"},
        )
        try:
            response = await resolved.client.send(http_request, stream=True)
        except httpx.HTTPError as exc:
            raise self._transport_error(exc, pid, MODE_STREAM) from exc

        if not response.is_success:
            # Read the body so the connection is released.
            await response.aread()
            await response.aclose()
            raise self._upstream_error(response, pid, MODE_STREAM)
        return response

    async def _stream(
        self, resolved: ResolvedProvider, body: dict
    ) -> AsyncIterator[StreamChunk]:
        pid = resolved.provider_id
        decoder = StreamDecoder(pid)

        # Only the connection phase is retried; a started stream is never
        # resumed.
        try:
            response = await self._stream_retry.run(
                lambda: self._open_stream(resolved, body),
                provider=pid,
                mode=MODE_STREAM,
            )
        except LLMError as exc:
            yield decoder.fail(exc)
            return

        try:
            async for line in aiter_sse_lines(response.aiter_bytes()):
                chunk = decoder.decode(line)
                if chunk is not None:
                    yield chunk
                if decoder.finished:
                    break
        except (httpx.HTTPError, httpx.StreamError) as exc:
            chunk = decoder.fail(
                TransportError(
                    f"stream interrupted: {type(exc).__name__}: {exc}",
                    timeout=isinstance(exc, httpx.TimeoutException),
                    provider=pid,
                    mode=MODE_STREAM,
                )
            )
            if chunk is not None:
                yield chunk
        finally:
            await response.aclose()

        tail = decoder.finish()
        if tail is not None:
            yield tail

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def chat_complete(
        self, request: ChatRequest, provider_id: str | None = None
    ) -> ChatResponse:
        """
        Consume a full stream and return it as a ``ChatResponse``.

        An error-terminated stream raises the exception carried by its
        terminal chunk.
        """
        content_parts: list[str] = []
        tool_calls: list[ToolCall] | None = None
        finish_reason: str | None = None

        async for chunk in self.stream(request, provider_id):
            if chunk.delta:
                content_parts.append(chunk.delta)
            if chunk.done:
                if chunk.error is not None:
                    raise chunk.error
                tool_calls = chunk.tool_calls
                finish_reason = chunk.finish_reason

        content = "".join(content_parts)
        return ChatResponse(
            content=None if tool_calls else content,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )
