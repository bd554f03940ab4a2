"""Core types for the LLM gateway client."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class FunctionCall:
    """Name and raw JSON-encoded arguments of a function tool call."""

    name: str
    arguments: str = ""


@dataclass
class ToolCall:
    """
    A tool call emitted by the model.

    *arguments* stays a raw JSON string; the client only transports and
    reassembles it.
    """

    id: str
    function: FunctionCall
    type: str = "function"

    def parsed_arguments(self) -> Any:
        """Decode the argument string (``{}`` when empty)."""
        return json.loads(self.function.arguments or "{}")

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function.name,
                "arguments": self.function.arguments,
            },
        }


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role="assistant", content=content)

    @classmethod
    def assistant_with_tool_calls(cls, tool_calls: list[ToolCall]) -> Message:
        """An assistant turn that only requests tool use (no content)."""
        return cls(role="assistant", tool_calls=list(tool_calls))

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)


@dataclass
class ChatRequest:
    """
    Provider-agnostic chat request.

    Streaming is chosen by the call (``LLMClient.chat`` vs
    ``LLMClient.stream``), not by a field here.
    """

    messages: list[Message] = field(default_factory=list)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[dict] | None = None
    tool_choice: str | dict | None = None


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResponse:
    """
    A complete (non-streaming) chat completion.

    *content* is ``None`` when the model answered with tool calls only.
    *usage* is ``None`` when the upstream omitted it.
    """

    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass
class StreamChunk:
    """
    A single chunk yielded while streaming a chat completion.

    *delta* carries new text content.
    *tool_calls* carries fully-assembled tool calls and is only ever set on
    the terminal chunk.
    *done* is ``True`` on exactly one chunk: the last one.
    *tool_call_name* / *tool_call_arguments_delta* echo the raw fragment of
    the frame for incremental display; they are never assembled.
    *error* holds the typed exception when the stream ended on a failure.
    """

    delta: str | None = None
    tool_calls: list[ToolCall] | None = None
    finish_reason: str | None = None
    done: bool = False
    tool_call_name: str | None = None
    tool_call_arguments_delta: str | None = None
    error: Exception | None = field(default=None, compare=False)

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
