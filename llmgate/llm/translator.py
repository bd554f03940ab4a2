"""
Request translation -- domain ``ChatRequest`` to the chat-completions body.

Wire fields whose domain value is absent are omitted, never sent as
``null``; some providers treat the two differently.
"""

from __future__ import annotations

import logging

from llmgate.errors import ConfigurationError
from llmgate.llm.types import ChatRequest, Message

logger = logging.getLogger(__name__)


def message_to_wire(msg: Message) -> dict:
    m: dict = {"role": msg.role}
    if msg.content is not None:
        m["content"] = msg.content
    if msg.tool_calls:
        m["tool_calls"] = [tc.to_wire() for tc in msg.tool_calls]
    if msg.tool_call_id is not None:
        m["tool_call_id"] = msg.tool_call_id
    return m


def build_request(
    request: ChatRequest,
    provider_id: str,
    default_model: str | None,
    *,
    stream: bool,
    default_temperature: float | None = None,
    default_max_tokens: int | None = None,
    forward_tool_choice_on_stream: bool = True,
) -> dict:
    """
    Build the JSON body for ``POST /chat/completions``.

    The model is ``request.model``, else *default_model*, else
    ``ConfigurationError``.  Sampling parameters fall back to the given
    global defaults.  ``stream`` comes from the call mode.
    """
    model = request.model or default_model
    if not model:
        raise ConfigurationError(
            "no model resolvable",
            provider=provider_id,
            mode="stream" if stream else "sync",
        )

    body: dict = {
        "model": model,
        "messages": [message_to_wire(m) for m in request.messages],
        "stream": stream,
    }

    temperature = (
        request.temperature
        if request.temperature is not None
        else default_temperature
    )
    if temperature is not None:
        body["temperature"] = temperature

    max_tokens = (
        request.max_tokens
        if request.max_tokens is not None
        else default_max_tokens
    )
    if max_tokens is not None:
        body["max_tokens"] = max_tokens

    if request.tools:
        body["tools"] = request.tools
    if request.tool_choice is not None and (
        not stream or forward_tool_choice_on_stream
    ):
        body["tool_choice"] = request.tool_choice

    logger.info(
        "REQUEST: provider=%s model=%s stream=%s messages=%d tools=%d",
        provider_id,
        model,
        stream,
        len(body["messages"]),
        len(request.tools) if request.tools else 0,
    )
    return body
