"""
LLM Module - Generative providers for the fallback reply
========================================================

This module provides a unified asynchronous interface over:
- Gemini (Google Generative Language API)
- OpenRouter and Groq (OpenAI-compatible chat completions)
"""

from .base import BaseLLMProvider, LLMResponse
from .gemini import GeminiProvider
from .openai_compat import OpenAICompatibleProvider, OpenRouterProvider, GroqProvider
from .factory import create_llm_provider, PROVIDERS

__all__ = [
    "BaseLLMProvider",
    "LLMResponse",
    "GeminiProvider",
    "OpenAICompatibleProvider",
    "OpenRouterProvider",
    "GroqProvider",
    "create_llm_provider",
    "PROVIDERS",
]
