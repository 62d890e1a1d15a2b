"""
Service layer - LLM model catalogue and credential resolution.
Following SOLID: Single Responsibility - maps a model identifier to everything
needed to call it.

Model identifiers take the form [provider/][company/]model, e.g.
"openrouter/openai/gpt-4o-mini".
"""
import os
from dataclasses import dataclass, replace
from typing import Dict, Optional

from domain.errors import ConfigurationError, UnknownModelError

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

API_KEY_ENV_BY_BASE_URL = {
    OPENROUTER_BASE_URL: "OPENROUTER_API_KEY",
    ANTHROPIC_BASE_URL: "ANTHROPIC_API_KEY",
    GEMINI_BASE_URL: "GEMINI_API_KEY",
    OPENAI_BASE_URL: "OPENAI_API_KEY",
}

DEFAULT_MODEL_KEY = "openrouter/openai/gpt-4o-mini"


@dataclass(frozen=True)
class LlmConfig:
    """Everything an Agent needs to reach one model."""
    model: str
    base_url: str
    rag_top_n: int = 4
    credits_per_message: int = 1
    supports_images: bool = False
    api_key: Optional[str] = None


MODELS: Dict[str, LlmConfig] = {
    "openrouter/openai/gpt-4o-mini": LlmConfig(
        model="openai/gpt-4o-mini", base_url=OPENROUTER_BASE_URL, supports_images=True
    ),
    "openrouter/openai/gpt-5-mini": LlmConfig(
        model="openai/gpt-5-mini", base_url=OPENROUTER_BASE_URL, supports_images=True
    ),
    "openrouter/openai/gpt-5": LlmConfig(
        model="openai/gpt-5", base_url=OPENROUTER_BASE_URL, credits_per_message=4, supports_images=True
    ),
    "openrouter/google/gemini-2.5-flash": LlmConfig(
        model="google/gemini-2.5-flash", base_url=OPENROUTER_BASE_URL, credits_per_message=2, supports_images=True
    ),
    "openrouter/anthropic/claude-sonnet-4": LlmConfig(
        model="anthropic/claude-sonnet-4", base_url=OPENROUTER_BASE_URL, credits_per_message=4
    ),
    "gpt-4o-mini": LlmConfig(model="gpt-4o-mini", base_url=OPENAI_BASE_URL, supports_images=True),
    "gpt-4o": LlmConfig(model="gpt-4o", base_url=OPENAI_BASE_URL, credits_per_message=2, supports_images=True),
    "o1-mini": LlmConfig(model="o1-mini", base_url=OPENAI_BASE_URL, credits_per_message=2),
    "gemini-2.5-flash": LlmConfig(model="gemini-2.5-flash", base_url=GEMINI_BASE_URL, credits_per_message=2),
}


@dataclass
class ParsedModelString:
    model: str
    company: Optional[str] = None
    provider: Optional[str] = None


def parse_model_string(model: str) -> ParsedModelString:
    parts = model.split("/")
    if len(parts) == 1:
        return ParsedModelString(model=model)
    if len(parts) == 2:
        return ParsedModelString(company=parts[0], model=parts[1])
    return ParsedModelString(provider=parts[0], company=parts[1], model="/".join(parts[2:]))


def get_api_key(config: LlmConfig) -> str:
    """
    Resolve the credential for a model from its provider base URL.

    Raises:
        ConfigurationError: If the base URL is unknown or its key is not set
    """
    env_var = API_KEY_ENV_BY_BASE_URL.get(config.base_url)
    if env_var is None:
        raise ConfigurationError(f"Unknown base URL: {config.base_url}")
    key = os.getenv(env_var)
    if not key:
        raise ConfigurationError(f"{env_var} is not set (required for {config.model})")
    return key


def get_config(model: Optional[str] = None) -> LlmConfig:
    """
    Catalogue entry for a model key, with its API key resolved.

    Raises:
        UnknownModelError: If the model key is not in the catalogue
    """
    key = model or DEFAULT_MODEL_KEY
    config = MODELS.get(key)
    if config is None:
        raise UnknownModelError(f"Unknown model: {key}")
    return replace(config, api_key=get_api_key(config))
