"""
Typed configuration snapshot with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < CLI flags

Example file::

    providers:
      openai:
        endpoint: https://api.openai.com/v1
        api_key_env: OPENAI_API_KEY
        models: [gpt-4o, gpt-4o-mini]
      deepseek:
        endpoint: https://api.deepseek.com/v1
        api_key_env: DEEPSEEK_API_KEY
        models: [deepseek-chat, deepseek-coder]
        default_model: deepseek-chat
    default_provider: deepseek
    temperature: 0.7
    retry:
      max_attempts: 3
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from llmgate.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderConfig:
    endpoint: str = ""
    api_key: str = ""
    api_key_env: str = ""
    models: tuple[str, ...] = ()
    default_model: str | None = None

    @property
    def effective_api_key(self) -> str:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env, "")
        return ""

    @property
    def effective_default_model(self) -> str | None:
        """The configured default model, else the first listed model."""
        if self.default_model:
            return self.default_model
        return self.models[0] if self.models else None

    def validate(self, provider_id: str) -> None:
        if not self.endpoint:
            raise ConfigurationError(
                "provider has no endpoint", provider=provider_id
            )
        if not self.models:
            raise ConfigurationError(
                "provider lists no models", provider=provider_id
            )
        if self.default_model and self.default_model not in self.models:
            raise ConfigurationError(
                f"default model {self.default_model!r} is not one of "
                f"{list(self.models)}",
                provider=provider_id,
            )


@dataclass
class RetryConfig:
    max_attempts: int = 3
    stream_max_attempts: int = 2
    initial_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 8.0


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class GatewayConfig:
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    default_provider: str | None = None
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout_seconds: float = 60
    retry: RetryConfig = field(default_factory=RetryConfig)

    def get_provider(self, provider_id: str) -> ProviderConfig | None:
        return self.providers.get(provider_id)

    def default_provider_id(self) -> str | None:
        """
        The configured default if it names a known provider, else the
        lexicographically first provider.  Matches what
        ``ProviderRegistry.resolve`` picks for an unqualified call.
        """
        if self.default_provider and self.default_provider in self.providers:
            return self.default_provider
        return min(self.providers) if self.providers else None

    def default_model(self, provider_id: str) -> str | None:
        cfg = self.get_provider(provider_id)
        if cfg is None:
            return None
        return cfg.effective_default_model

    def validate(self) -> None:
        for provider_id, cfg in self.providers.items():
            cfg.validate(provider_id)

    def to_dict(self) -> dict:
        d = asdict(self)
        for provider in d["providers"].values():
            if provider.get("api_key"):
                provider["api_key"] = "***"
            provider["models"] = list(provider["models"])
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


def _build_provider(provider_id: str, raw: Any) -> ProviderConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError(
            "provider section must be a mapping", provider=provider_id
        )
    # Accept the dashed spelling used by some config files.
    normalized = {k.replace("-", "_"): v for k, v in raw.items()}
    cfg = _build_section(ProviderConfig, normalized)
    models = cfg.models or ()
    if isinstance(models, str):
        # A lone model name, e.g. "models: gpt-4o".
        models = (models,)
    elif not isinstance(models, (list, tuple)):
        raise ConfigurationError(
            f"models must be a list of model names, got {type(models).__name__}",
            provider=provider_id,
        )
    return replace(cfg, models=tuple(models))


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "LLMGATE_DEFAULT_PROVIDER":          ("default_provider", str),
    "LLMGATE_TEMPERATURE":               ("temperature", float),
    "LLMGATE_MAX_TOKENS":                ("max_tokens", int),
    "LLMGATE_TIMEOUT":                   ("timeout_seconds", float),
    "LLMGATE_RETRY_MAX_ATTEMPTS":        ("retry.max_attempts", int),
    "LLMGATE_RETRY_STREAM_MAX_ATTEMPTS": ("retry.stream_max_attempts", int),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> GatewayConfig:
    """
    Build a validated GatewayConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- Build sections from raw ---
    top_level = {
        k.replace("-", "_"): v
        for k, v in raw.items()
        if k not in ("providers", "retry")
    }
    cfg = _build_section(GatewayConfig, top_level)
    cfg.providers = {
        str(pid): _build_provider(str(pid), praw)
        for pid, praw in (raw.get("providers") or {}).items()
    }
    cfg.retry = _build_section(RetryConfig, raw.get("retry") or {})

    # --- 2. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 3. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    cfg.validate()
    return cfg
