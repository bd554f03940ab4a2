"""llmgate -- OpenAI-compatible LLM gateway client."""

__version__ = "0.1.0"
