"""
Mock upstream endpoints for testing.

Provides canned chat-completions responses served through
``httpx.MockTransport`` so tests can exercise the client without hitting
real APIs.
"""

from __future__ import annotations

import json

import httpx

from llmgate.config import GatewayConfig, ProviderConfig, RetryConfig


def make_config(
    provider_ids: tuple[str, ...] = ("openai",),
    default_provider: str | None = None,
    max_attempts: int = 3,
    stream_max_attempts: int = 2,
) -> GatewayConfig:
    """A config with one provider per id, each serving ``<id>-model``."""
    providers = {
        pid: ProviderConfig(
            endpoint=f"https://{pid}.example.com/v1",
            api_key=f"key-{pid}",
            models=(f"{pid}-model", f"{pid}-model-mini"),
            default_model=f"{pid}-model",
        )
        for pid in provider_ids
    }
    return GatewayConfig(
        providers=providers,
        default_provider=default_provider,
        retry=RetryConfig(
            max_attempts=max_attempts,
            stream_max_attempts=stream_max_attempts,
            initial_delay=0.5,
            multiplier=2.0,
            max_delay=8.0,
        ),
    )


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingHandler:
    """
    ``httpx.MockTransport`` handler that replays a list of responses.

    Each entry is an ``httpx.Response`` or an exception to raise.  The last
    entry repeats once the list is exhausted.
    """

    def __init__(self, responses: list[httpx.Response | Exception]) -> None:
        self._responses = responses
        self.requests: list[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests), len(self._responses)) - 1
        item = self._responses[idx]
        if isinstance(item, Exception):
            raise item
        if isinstance(item.stream, httpx.ByteStream):
            # Responses are single-use; replay a fresh copy each time.
            return httpx.Response(
                item.status_code, headers=item.headers, content=item.content
            )
        return item

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def json_response(payload: dict, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def text_completion(
    content: str = "hello",
    finish_reason: str = "stop",
    usage: dict | None = None,
) -> dict:
    body: dict = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
    }
    if usage is not None:
        body["usage"] = usage
    return body


def tool_call_completion(
    name: str = "get_weather",
    arguments: str = '{"city": "Paris"}',
    call_id: str = "call_abc123",
) -> dict:
    return {
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": call_id,
                            "type": "function",
                            "function": {"name": name, "arguments": arguments},
                        }
                    ],
                },
                "finish_reason": "tool_calls",
            }
        ],
        "usage": {"prompt_tokens": 20, "completion_tokens": 8, "total_tokens": 28},
    }


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------

def delta_frame(
    content: str | None = None,
    tool_calls: list[dict] | None = None,
    finish_reason: str | None = None,
) -> str:
    delta: dict = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    payload = {
        "choices": [
            {"index": 0, "delta": delta, "finish_reason": finish_reason}
        ]
    }
    return "data: " + json.dumps(payload)


def sse_body(frames: list[str], done_marker: bool = True) -> bytes:
    """Join frames into an SSE body with blank-line separators."""
    lines = list(frames)
    if done_marker:
        lines.append("data: [DONE]")
    return "".join(f"{line}\n\n" for line in lines).encode("utf-8")


def sse_response(frames: list[str], done_marker: bool = True) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Type": "text/event-stream"},
        content=sse_body(frames, done_marker),
    )


def text_stream_frames(text: str) -> list[str]:
    """Stream *text* one word at a time, then a ``stop`` frame."""
    words = text.split(" ")
    frames = [delta_frame(content="")]
    for i, word in enumerate(words):
        suffix = " " if i < len(words) - 1 else ""
        frames.append(delta_frame(content=word + suffix))
    frames.append(delta_frame(finish_reason="stop"))
    return frames


def split_tool_call_frames(
    name: str = "get_weather",
    arguments: str = '{"city": "Paris"}',
    call_id: str = "call_abc123",
    index: int = 0,
) -> list[str]:
    """
    Stream a single tool call with id, name and argument thirds in separate
    frames, followed by a ``tool_calls`` finish frame.
    """
    third = max(1, len(arguments) // 3)
    parts = [arguments[:third], arguments[third:2 * third], arguments[2 * third:]]
    frames = [
        delta_frame(tool_calls=[{"index": index, "id": call_id, "type": "function"}]),
        delta_frame(tool_calls=[{"index": index, "function": {"name": name}}]),
    ]
    for part in parts:
        if part:
            frames.append(
                delta_frame(
                    tool_calls=[{"index": index, "function": {"arguments": part}}]
                )
            )
    frames.append(delta_frame(finish_reason="tool_calls"))
    return frames

