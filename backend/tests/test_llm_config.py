"""
Tests for the model catalogue.
"""
import pytest

from domain.errors import ConfigurationError, UnknownModelError
from services.llm_config import (
    DEFAULT_MODEL_KEY, OPENAI_BASE_URL, OPENROUTER_BASE_URL, LlmConfig, get_api_key, get_config, parse_model_string
)


class TestParseModelString:
    def test_bare_model(self):
        parsed = parse_model_string("gpt-4o-mini")
        assert (parsed.provider, parsed.company, parsed.model) == (None, None, "gpt-4o-mini")

    def test_company_and_model(self):
        parsed = parse_model_string("openai/gpt-4o")
        assert (parsed.provider, parsed.company, parsed.model) == (None, "openai", "gpt-4o")

    def test_provider_company_model(self):
        parsed = parse_model_string("openrouter/google/gemini-2.5-flash")
        assert (parsed.provider, parsed.company, parsed.model) == ("openrouter", "google", "gemini-2.5-flash")


class TestGetConfig:
    def test_default_model(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
        config = get_config()

        assert DEFAULT_MODEL_KEY == "openrouter/openai/gpt-4o-mini"
        assert config.model == "openai/gpt-4o-mini"
        assert config.base_url == OPENROUTER_BASE_URL
        assert config.api_key == "or-key"

    def test_openai_model(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        config = get_config("o1-mini")
        assert config.base_url == OPENAI_BASE_URL
        assert config.api_key == "sk-test"

    def test_unknown_model(self):
        with pytest.raises(UnknownModelError):
            get_config("acme/unknown-model")

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            get_config("gpt-4o-mini")

    def test_unknown_base_url(self):
        with pytest.raises(ConfigurationError):
            get_api_key(LlmConfig(model="m", base_url="https://llm.internal/v1"))
