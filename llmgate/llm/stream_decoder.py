"""
Server-Sent-Events decoding for streamed chat completions.

Each SSE frame has the form::

    data: {json}\\n\\n

The sentinel ``data: [DONE]`` terminates the stream.  A ``StreamDecoder``
turns frames into ``StreamChunk`` objects one at a time, feeding tool-call
fragments into a private ``ToolCallAssembler``.  Assembled tool calls are
only ever attached to the terminal chunk.

A frame that is not valid JSON, or whose shape is not a chat-completions
chunk, ends the stream: the decoder emits a terminal chunk with
``finish_reason="error"`` and any partially assembled tool calls are
dropped.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncIterator, Iterable, Iterator

from llmgate.errors import LLMError, ProtocolError
from llmgate.llm.tool_call_assembler import ToolCallAssembler, ToolCallFragment
from llmgate.llm.types import StreamChunk

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"
ERROR_FINISH_REASON = "error"

# SSE lines that are not data frames: comments and non-data fields.
_IGNORED_PREFIXES = (":", "event:", "id:", "retry:")


async def aiter_sse_lines(byte_chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Split an async byte stream into text lines (without line endings)."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for raw_bytes in byte_chunks:
        buffer += decoder.decode(raw_bytes)

        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            yield line.rstrip("\r")

    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


class StreamDecoder:
    """
    Decodes the frames of one streaming call.

    Usage::

        decoder = StreamDecoder()
        for frame in frames:
            chunk = decoder.decode(frame)
            if chunk is not None:
                handle(chunk)
            if decoder.finished:
                break
        tail = decoder.finish()
        if tail is not None:
            handle(tail)

    ``finish()`` yields the terminal chunk when the upstream never sent a
    ``finish_reason``; it returns ``None`` once a terminal chunk was emitted.
    """

    def __init__(self, provider: str | None = None) -> None:
        self._provider = provider
        self._assembler = ToolCallAssembler()
        self._done = False
        self._saw_sentinel = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        """``True`` once the terminal chunk has been produced."""
        return self._done

    @property
    def finished(self) -> bool:
        """``True`` when no further frames should be read."""
        return self._done or self._saw_sentinel

    @property
    def assembler_errors(self) -> list[str]:
        return list(self._assembler.errors)

    def decode(self, frame: str) -> StreamChunk | None:
        """
        Decode one frame.

        Returns ``None`` for frames that carry no chunk (blank lines, SSE
        comments, the ``[DONE]`` sentinel) and for every frame after the
        terminal chunk.
        """
        if self._done:
            return None

        payload = self._payload(frame)
        if payload is None:
            return None

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            return self.fail(
                ProtocolError(
                    f"stream frame is not valid JSON: {exc}",
                    provider=self._provider,
                    mode="stream",
                )
            )

        try:
            return self._to_chunk(data)
        except ProtocolError as exc:
            return self.fail(exc)

    def finish(self) -> StreamChunk | None:
        """Produce the terminal chunk if the stream has not produced one."""
        if self._done:
            return None
        self._done = True
        return StreamChunk(done=True, tool_calls=self._assembler.finish() or None)

    def fail(self, error: LLMError) -> StreamChunk | None:
        """
        Terminate the stream on *error*.

        Partially assembled tool calls are discarded.
        """
        if self._done:
            return None
        self._done = True
        logger.warning(
            "Stream terminated on error (provider=%s, dropped %d partial "
            "tool call(s)): %s",
            self._provider,
            len(self._assembler),
            error,
        )
        self._assembler.reset()
        return StreamChunk(
            done=True, finish_reason=ERROR_FINISH_REASON, error=error
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _payload(self, frame: str) -> str | None:
        line = frame.strip()
        if not line or line.startswith(_IGNORED_PREFIXES):
            return None
        if line.startswith(DATA_PREFIX):
            line = line[len(DATA_PREFIX):].strip()
        if line == DONE_SENTINEL:
            self._saw_sentinel = True
            return None
        return line or None

    def _protocol_error(self, message: str) -> ProtocolError:
        return ProtocolError(message, provider=self._provider, mode="stream")

    def _to_chunk(self, data: Any) -> StreamChunk | None:
        """Convert a parsed SSE ``data`` payload into a ``StreamChunk``."""
        if not isinstance(data, dict):
            raise self._protocol_error("stream frame is not a JSON object")

        choices = data.get("choices")
        if choices is None or choices == []:
            # Keep-alive or usage-only frame.
            return None
        if not isinstance(choices, list):
            raise self._protocol_error("'choices' is not an array")

        choice = choices[0]
        if not isinstance(choice, dict):
            raise self._protocol_error("choices[0] is not an object")

        delta = choice.get("delta") or {}
        if not isinstance(delta, dict):
            raise self._protocol_error("choices[0].delta is not an object")

        content = delta.get("content")
        if content is not None and not isinstance(content, str):
            raise self._protocol_error("delta.content is not a string")

        chunk = StreamChunk(delta=content)

        fragments = self._fragments(delta.get("tool_calls"))
        for fragment in fragments:
            self._assembler.feed(fragment)
        if fragments:
            chunk.tool_call_name = fragments[0].name
            chunk.tool_call_arguments_delta = fragments[0].arguments

        finish_reason = choice.get("finish_reason")
        if finish_reason is not None:
            if not isinstance(finish_reason, str):
                raise self._protocol_error("finish_reason is not a string")
            self._done = True
            chunk.done = True
            chunk.finish_reason = finish_reason
            chunk.tool_calls = self._assembler.finish() or None

        return chunk

    def _fragments(self, raw_tcs: Any) -> list[ToolCallFragment]:
        if raw_tcs is None:
            return []
        if not isinstance(raw_tcs, list):
            raise self._protocol_error("delta.tool_calls is not an array")

        fragments: list[ToolCallFragment] = []
        for raw_tc in raw_tcs:
            if not isinstance(raw_tc, dict):
                raise self._protocol_error("tool call fragment is not an object")
            idx = raw_tc.get("index", 0)
            if isinstance(idx, bool) or not isinstance(idx, int):
                raise self._protocol_error(
                    f"tool call fragment index is not an integer: {idx!r}"
                )
            func = raw_tc.get("function")
            if func is None:
                func = {}
            if not isinstance(func, dict):
                raise self._protocol_error("tool call 'function' is not an object")
            fields = {
                "id": raw_tc.get("id"),
                "type": raw_tc.get("type"),
                "name": func.get("name"),
                "arguments": func.get("arguments"),
            }
            for key, value in fields.items():
                if value is not None and not isinstance(value, str):
                    raise self._protocol_error(
                        f"tool call fragment {key} is not a string"
                    )
            fragments.append(ToolCallFragment(index=idx, **fields))
        return fragments


def iter_chunks(
    frames: Iterable[str], provider: str | None = None
) -> Iterator[StreamChunk]:
    """Decode a complete sequence of frames with a fresh decoder."""
    decoder = StreamDecoder(provider)
    for frame in frames:
        chunk = decoder.decode(frame)
        if chunk is not None:
            yield chunk
        if decoder.finished:
            break
    tail = decoder.finish()
    if tail is not None:
        yield tail
