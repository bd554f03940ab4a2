"""
Provider registry -- one reusable HTTP client per configured provider.

The registry is built once from a ``GatewayConfig`` and is read-only
afterwards, so concurrent calls can resolve providers without locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from llmgate.config import GatewayConfig, ProviderConfig
from llmgate.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedProvider:
    """The outcome of ``ProviderRegistry.resolve``."""

    client: httpx.AsyncClient
    provider_id: str
    default_model: str | None


class ProviderRegistry:
    """
    Holds endpoint, credential, and transport handle per provider id.

    Parameters
    ----------
    config:
        The configuration snapshot.  Providers are validated on build.
    transport:
        Optional ``httpx`` transport shared by every client (tests pass an
        ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: GatewayConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._providers: dict[str, ProviderConfig] = dict(config.providers)
        self._clients: dict[str, httpx.AsyncClient] = {}
        for provider_id, provider_cfg in self._providers.items():
            provider_cfg.validate(provider_id)
            self._clients[provider_id] = self._build_client(
                provider_cfg, config.timeout_seconds, transport
            )
            logger.info(
                "Provider registered: id=%s endpoint=%s default_model=%s",
                provider_id,
                provider_cfg.endpoint,
                provider_cfg.effective_default_model,
            )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @staticmethod
    def _build_client(
        cfg: ProviderConfig,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None,
    ) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        api_key = cfg.effective_api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        # Trailing slash keeps the endpoint path when joining
        # "chat/completions" onto it.
        base_url = cfg.endpoint.rstrip("/") + "/"
        return httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def provider_ids(self) -> list[str]:
        """Configured provider ids in sorted order."""
        return sorted(self._providers)

    def get_config(self, provider_id: str) -> ProviderConfig | None:
        return self._providers.get(provider_id)

    def _fallback_id(self) -> str | None:
        default = self._config.default_provider
        if default and default in self._providers:
            return default
        first = min(self._providers) if self._providers else None
        if default:
            logger.warning(
                "Default provider %r is not configured; using %r",
                default,
                first,
            )
        return first

    def resolve(self, provider_id: str | None = None) -> ResolvedProvider:
        """
        Pick the provider for a call.

        Order: the explicit *provider_id* if configured, else the configured
        default provider, else the lexicographically first provider.  An
        explicit but unknown id falls back with a warning.

        Raises ``ConfigurationError`` when no provider is configured.
        """
        if provider_id is not None and provider_id in self._providers:
            chosen = provider_id
        else:
            chosen = self._fallback_id()
            if chosen is None:
                raise ConfigurationError(
                    "no LLM provider configured", provider=provider_id
                )
            if provider_id is not None:
                logger.warning(
                    "Unknown provider %r requested; falling back to %r",
                    provider_id,
                    chosen,
                )
        return ResolvedProvider(
            client=self._clients[chosen],
            provider_id=chosen,
            default_model=self._providers[chosen].effective_default_model,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close every provider client."""
        for client in self._clients.values():
            await client.aclose()
