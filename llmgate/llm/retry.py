"""
Retry policy -- failure classification and exponential backoff.

Retryable: timeouts, connection failures, upstream 5xx and 429.
Everything else (other 4xx, protocol and configuration errors, generic
exceptions) fails immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from llmgate.config import RetryConfig
from llmgate.errors import (
    ConfigurationError,
    ProtocolError,
    RetryExhaustedError,
    TransportError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lower-cased fragments that identify a connection-level failure in an
# ``OSError`` whose subclass alone does not say so.
_CONNECTION_MARKERS = (
    "connection refused",
    "connection reset",
    "connection aborted",
    "connection closed",
    "broken pipe",
    "timed out",
    "name or service not known",
    "temporary failure in name resolution",
    "network is unreachable",
)


class RetryPolicy:
    """
    Classify failures and drive an attempt loop with capped exponential
    backoff.

    Parameters
    ----------
    max_attempts:
        Total attempts, including the first one.
    initial_delay:
        Delay before the first retry, in seconds.
    multiplier:
        Factor applied to the delay after each retry.
    max_delay:
        Upper bound on any single delay.
    sleep:
        Coroutine used to wait between attempts (tests inject a recorder).
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 0.5,
        multiplier: float = 2.0,
        max_delay: float = 8.0,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(
        cls,
        cfg: RetryConfig,
        *,
        stream: bool = False,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> RetryPolicy:
        return cls(
            max_attempts=cfg.stream_max_attempts if stream else cfg.max_attempts,
            initial_delay=cfg.initial_delay,
            multiplier=cfg.multiplier,
            max_delay=cfg.max_delay,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    @staticmethod
    def classify(error: BaseException) -> bool:
        """Return ``True`` if *error* is worth another attempt."""
        if isinstance(error, (ConfigurationError, ProtocolError)):
            return False
        if isinstance(error, UpstreamError):
            return error.status_code == 429 or error.status_code >= 500
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            return status == 429 or status >= 500
        if isinstance(error, (TransportError, httpx.TransportError)):
            return True
        if isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
            return True
        if isinstance(error, OSError):
            text = str(error).lower()
            return any(marker in text for marker in _CONNECTION_MARKERS)
        return False

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry *retry_number* (1 for the first retry)."""
        delay = self.initial_delay * (self.multiplier ** (retry_number - 1))
        return min(delay, self.max_delay)

    # ------------------------------------------------------------------
    # Attempt loop
    # ------------------------------------------------------------------

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        provider: str | None = None,
        mode: str | None = None,
    ) -> T:
        """
        Await *operation* until it succeeds, fails fatally, or the attempt
        budget runs out.

        Non-retryable errors propagate unchanged.  Exhaustion raises
        ``RetryExhaustedError`` chained to the last failure.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not self.classify(exc):
                    raise
                last_error = exc
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retryable failure (provider=%s mode=%s attempt %d/%d), "
                    "retrying in %.2fs: %s",
                    provider,
                    mode,
                    attempt,
                    self.max_attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)

        if last_error is None:
            raise RuntimeError("unreachable")
        raise RetryExhaustedError(
            f"gave up after {self.max_attempts} attempt(s): {last_error}",
            attempts=self.max_attempts,
            last_error=last_error,
            provider=provider,
            mode=mode,
        ) from last_error
