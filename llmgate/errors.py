"""
Error taxonomy for the gateway client.

Every failure raised to a caller is an ``LLMError`` carrying the provider
and call mode it happened in.  The underlying cause is chained with
``raise ... from exc`` so nothing is hidden.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base class for all gateway errors."""

    default_code = "LLM_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        provider: str | None = None,
        mode: str | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code or self.default_code
        self.provider = provider
        self.mode = mode

    def __str__(self) -> str:
        msg = super().__str__()
        context = []
        if self.provider:
            context.append(f"provider={self.provider}")
        if self.mode:
            context.append(f"mode={self.mode}")
        if context:
            return f"{msg} ({', '.join(context)})"
        return msg


class ConfigurationError(LLMError):
    """No provider or no model could be resolved.  Never retried."""

    default_code = "CONFIGURATION_ERROR"


class TransportError(LLMError):
    """Connection failure or timeout before a response arrived."""

    default_code = "TRANSPORT_ERROR"

    def __init__(self, message: str, *, timeout: bool = False, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.timeout = timeout


class UpstreamError(LLMError):
    """The provider answered with a non-2xx status."""

    default_code = "UPSTREAM_ERROR"

    def __init__(
        self, message: str, *, status_code: int, body: str = "", **kwargs
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body


class ProtocolError(LLMError):
    """The response body does not match the expected schema."""

    default_code = "PROTOCOL_ERROR"


class RetryExhaustedError(LLMError):
    """
    All attempts failed with retryable errors.

    *last_error* is the failure of the final attempt (also ``__cause__``).
    """

    default_code = "RETRY_EXHAUSTED"

    def __init__(
        self, message: str, *, attempts: int, last_error: Exception, **kwargs
    ) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last_error = last_error
