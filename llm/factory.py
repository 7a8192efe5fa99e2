"""
LLM Factory - Factory for creating provider instances
=====================================================

Maps the configured provider name to its class. Missing credentials
and unknown providers are configuration errors, raised once at startup.
"""

from typing import Optional, Type, Dict

import httpx

from core.config import Config
from core.exceptions import ConfigError
from core.logging import get_logger
from .base import BaseLLMProvider
from .gemini import GeminiProvider
from .openai_compat import OpenRouterProvider, GroqProvider

logger = get_logger("llm.factory")


PROVIDERS: Dict[str, Type[BaseLLMProvider]] = {
    "gemini": GeminiProvider,
    "openrouter": OpenRouterProvider,
    "groq": GroqProvider,
}

API_KEY_HINTS = {
    "gemini": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
}


def create_llm_provider(
    config: Config,
    client: Optional[httpx.AsyncClient] = None
) -> BaseLLMProvider:
    """
    Create the provider named by ``config.llm.provider``.

    Args:
        config: Application config
        client: Optional HTTP client to use instead of a fresh one

    Raises:
        ConfigError: If the provider is unknown or has no API key
    """
    name = config.llm.provider.lower()

    if name not in PROVIDERS:
        raise ConfigError(
            f"Unknown LLM provider: {name}",
            details={"available_providers": ", ".join(PROVIDERS)}
        )

    if not config.llm.api_key:
        raise ConfigError(
            f"{name.capitalize()} API key is required",
            details={"hint": f"Set AUTO_REPLY_LLM_API_KEY or {API_KEY_HINTS[name]}"}
        )

    logger.info(f"Creating {name} provider", extra={"model": config.llm.model})
    return PROVIDERS[name](config.llm, client=client)
