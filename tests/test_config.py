"""Tests for llmgate.config."""

from __future__ import annotations

import dataclasses
import textwrap

import pytest

from llmgate.config import GatewayConfig, ProviderConfig, load_config
from llmgate.errors import ConfigurationError

SAMPLE = textwrap.dedent(
    """
    providers:
      openai:
        endpoint: https://api.openai.com/v1
        api-key: sk-test
        models: [gpt-4, gpt-3.5-turbo]
        default-model: gpt-4
      deepseek:
        endpoint: https://api.deepseek.com/v1
        api_key_env: DEEPSEEK_API_KEY
        models:
          - deepseek-chat
          - deepseek-coder
    default_provider: deepseek
    temperature: 0.2
    retry:
      max_attempts: 4
    """
)


@pytest.fixture
def config_file(tmp_path):
    p = tmp_path / "llmgate.yaml"
    p.write_text(SAMPLE, encoding="utf-8")
    return p


class TestDefaults:
    def test_default_values(self):
        cfg = GatewayConfig()
        assert cfg.temperature == 0.7
        assert cfg.max_tokens == 4096
        assert cfg.timeout_seconds == 60
        assert cfg.retry.max_attempts == 3
        assert cfg.retry.stream_max_attempts == 2
        assert cfg.providers == {}
        assert cfg.default_provider_id() is None

    def test_load_without_file(self):
        cfg = load_config(None)
        assert cfg.providers == {}

    def test_missing_file_is_ignored(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg.providers == {}


class TestFileLoading:
    def test_providers_loaded(self, config_file):
        cfg = load_config(config_file)
        assert set(cfg.providers) == {"openai", "deepseek"}
        openai = cfg.get_provider("openai")
        assert openai.endpoint == "https://api.openai.com/v1"
        assert openai.api_key == "sk-test"
        assert openai.models == ("gpt-4", "gpt-3.5-turbo")
        assert cfg.get_provider("missing") is None

    def test_top_level_and_retry_sections(self, config_file):
        cfg = load_config(config_file)
        assert cfg.default_provider == "deepseek"
        assert cfg.temperature == 0.2
        assert cfg.max_tokens == 4096
        assert cfg.retry.max_attempts == 4
        assert cfg.retry.stream_max_attempts == 2

    def test_default_models(self, config_file):
        cfg = load_config(config_file)
        assert cfg.default_model("openai") == "gpt-4"
        assert cfg.default_model("deepseek") == "deepseek-chat"
        assert cfg.default_model("not-exist") is None

    def test_api_key_env(self, config_file, monkeypatch):
        monkeypatch.setenv("DEEPSEEK_API_KEY", "ds-key")
        cfg = load_config(config_file)
        assert cfg.get_provider("deepseek").effective_api_key == "ds-key"

    def test_to_dict_masks_keys(self, config_file):
        d = load_config(config_file).to_dict()
        assert d["providers"]["openai"]["api_key"] == "***"
        assert d["providers"]["openai"]["models"] == ["gpt-4", "gpt-3.5-turbo"]


class TestOverrides:
    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("LLMGATE_DEFAULT_PROVIDER", "openai")
        monkeypatch.setenv("LLMGATE_TEMPERATURE", "1.5")
        monkeypatch.setenv("LLMGATE_RETRY_STREAM_MAX_ATTEMPTS", "5")
        cfg = load_config(config_file)
        assert cfg.default_provider == "openai"
        assert cfg.temperature == 1.5
        assert cfg.retry.stream_max_attempts == 5

    def test_cli_overrides_env(self, config_file, monkeypatch):
        monkeypatch.setenv("LLMGATE_MAX_TOKENS", "100")
        cfg = load_config(config_file, cli_overrides={"max_tokens": 200})
        assert cfg.max_tokens == 200


class TestValidation:
    def test_default_model_must_be_listed(self):
        with pytest.raises(ConfigurationError):
            ProviderConfig(endpoint="http://x", models=("a",), default_model="b").validate("p")

    def test_models_required(self):
        with pytest.raises(ConfigurationError):
            ProviderConfig(endpoint="http://x").validate("p")

    def test_endpoint_required(self):
        with pytest.raises(ConfigurationError):
            ProviderConfig(models=("a",)).validate("p")

    def test_invalid_file_rejected(self, tmp_path):
        p = tmp_path / "bad.yaml"
        p.write_text("providers:\n  x:\n    endpoint: http://x\n    models: []\n")
        with pytest.raises(ConfigurationError):
            load_config(p)

    def test_provider_config_is_immutable(self):
        cfg = ProviderConfig(endpoint="http://x", models=("a",))
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.endpoint = "http://y"

    def test_lexicographic_default_provider(self):
        cfg = GatewayConfig(
            providers={
                "zeta": ProviderConfig(endpoint="http://z", models=("m",)),
                "beta": ProviderConfig(endpoint="http://b", models=("m",)),
            }
        )
        assert cfg.default_provider_id() == "beta"

    def test_unknown_default_provider_falls_back_like_registry(self):
        cfg = GatewayConfig(
            providers={
                "b": ProviderConfig(endpoint="http://b", models=("m",)),
                "a": ProviderConfig(endpoint="http://a", models=("m",)),
            },
            default_provider="ghost",
        )
        assert cfg.default_provider_id() == "a"

    def test_single_model_string_is_one_model(self, tmp_path):
        p = tmp_path / "one.yaml"
        p.write_text("providers:\n  x:\n    endpoint: http://x\n    models: gpt-4\n")
        cfg = load_config(p)
        assert cfg.get_provider("x").models == ("gpt-4",)
        assert cfg.default_model("x") == "gpt-4"

    def test_models_mapping_rejected(self, tmp_path):
        p = tmp_path / "bad.yaml"
        p.write_text("providers:\n  x:\n    endpoint: http://x\n    models:\n      gpt-4: true\n")
        with pytest.raises(ConfigurationError):
            load_config(p)
