"""LLM subsystem -- provider resolution, wire translation, streaming, retry."""

from llmgate.llm.client import LLMClient
from llmgate.errors import (
    ConfigurationError,
    LLMError,
    ProtocolError,
    RetryExhaustedError,
    TransportError,
    UpstreamError,
)
from llmgate.llm.registry import ProviderRegistry
from llmgate.llm.retry import RetryPolicy
from llmgate.llm.stream_decoder import StreamDecoder
from llmgate.llm.tool_call_assembler import ToolCallAssembler
from llmgate.llm.types import (
    ChatRequest,
    ChatResponse,
    FunctionCall,
    Message,
    StreamChunk,
    ToolCall,
    Usage,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ConfigurationError",
    "FunctionCall",
    "LLMClient",
    "LLMError",
    "Message",
    "ProtocolError",
    "ProviderRegistry",
    "RetryExhaustedError",
    "RetryPolicy",
    "StreamChunk",
    "StreamDecoder",
    "ToolCall",
    "ToolCallAssembler",
    "TransportError",
    "UpstreamError",
    "Usage",
]
