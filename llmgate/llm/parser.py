"""Parse a complete (non-streaming) chat-completions response body."""

from __future__ import annotations

import json
from typing import Any

from llmgate.errors import ProtocolError
from llmgate.llm.types import ChatResponse, FunctionCall, ToolCall, Usage

_USAGE_FIELDS = ("prompt_tokens", "completion_tokens", "total_tokens")


def _optional_text(value: Any, what: str) -> str | None:
    if value is None or isinstance(value, str):
        return value
    raise ProtocolError(
        f"{what} must be a string or null, got {type(value).__name__}"
    )


def parse_tool_call(raw: Any) -> ToolCall:
    if not isinstance(raw, dict):
        raise ProtocolError("tool call entry is not an object")
    func = raw.get("function")
    if func is None:
        func = {}
    if not isinstance(func, dict):
        raise ProtocolError("tool call 'function' is not an object")
    return ToolCall(
        id=_optional_text(raw.get("id"), "tool call id") or "",
        type=_optional_text(raw.get("type"), "tool call type") or "function",
        function=FunctionCall(
            name=_optional_text(func.get("name"), "function name") or "",
            arguments=(
                _optional_text(func.get("arguments"), "function arguments") or ""
            ),
        ),
    )


def _parse_usage(raw: Any) -> Usage | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ProtocolError("'usage' is not an object")
    counts: dict[str, int] = {}
    for name in _USAGE_FIELDS:
        value = raw.get(name, 0)
        # bool is an int subclass but never a valid token count.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ProtocolError(f"usage.{name} is not numeric: {value!r}")
        if value < 0:
            raise ProtocolError(f"usage.{name} is negative: {value!r}")
        counts[name] = int(value)
    return Usage(**counts)


def parse_response(body: str | bytes | dict) -> ChatResponse:
    """
    Decode a chat-completions response into a ``ChatResponse``.

    Only ``choices[0]`` is consulted.  Raises ``ProtocolError`` when the
    body is not a JSON object, has no choices, or carries non-numeric usage
    counters.
    """
    if isinstance(body, (str, bytes)):
        try:
            root = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProtocolError(f"response is not valid JSON: {exc}") from exc
    else:
        root = body

    if not isinstance(root, dict):
        raise ProtocolError("response root is not an object")

    choices = root.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProtocolError("response has no choices")

    choice = choices[0]
    if not isinstance(choice, dict):
        raise ProtocolError("choices[0] is not an object")
    message = choice.get("message") or {}
    if not isinstance(message, dict):
        raise ProtocolError("choices[0].message is not an object")

    content = _optional_text(message.get("content"), "message content")

    tool_calls: list[ToolCall] | None = None
    raw_tcs = message.get("tool_calls")
    if raw_tcs is not None:
        if not isinstance(raw_tcs, list):
            raise ProtocolError("message tool_calls is not an array")
        tool_calls = [parse_tool_call(tc) for tc in raw_tcs]

    # A tool-call turn carries no content, even when the provider sent some
    # preamble text alongside the calls.
    if tool_calls:
        content = None

    return ChatResponse(
        content=content,
        tool_calls=tool_calls,
        finish_reason=_optional_text(choice.get("finish_reason"), "finish_reason"),
        usage=_parse_usage(root.get("usage")),
    )
