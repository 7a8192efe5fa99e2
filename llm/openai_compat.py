"""
OpenAI-compatible Provider - OpenRouter and Groq chat completions
=================================================================

Both gateways expose the OpenAI ``/chat/completions`` endpoint. The
instruction goes in as the system message and the user text as the
only user message.

Reference: https://openrouter.ai/docs, https://console.groq.com/docs
"""

from typing import Optional, Dict, Any

from core.exceptions import LLMError
from .base import BaseLLMProvider, LLMResponse


class OpenAICompatibleProvider(BaseLLMProvider):
    """Provider for OpenAI-style chat completion APIs."""

    PROVIDER_NAME = "openai-compatible"

    # OpenRouter uses these for attribution
    EXTRA_HEADERS: Dict[str, str] = {}

    def _build_request(self, prompt: str, system: Optional[str]) -> Dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }
        headers.update(self.EXTRA_HEADERS)

        return {
            "url": f"{self.api_base}/chat/completions",
            "headers": headers,
            "json": {
                "model": self.config.model,
                "messages": messages,
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
            },
        }

    def _parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        choices = data.get("choices")
        if not choices or not isinstance(choices, list):
            raise LLMError(f"No choices in {self.PROVIDER_NAME} response")

        choice = choices[0] if isinstance(choices[0], dict) else {}
        content = (choice.get("message") or {}).get("content")
        if not isinstance(content, str):
            raise LLMError(f"{self.PROVIDER_NAME} response carries no text")

        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            model=data.get("model", self.config.model),
            provider=self.PROVIDER_NAME,
            tokens_used=usage.get("total_tokens", 0),
            finish_reason=choice.get("finish_reason") or "stop",
        )


class OpenRouterProvider(OpenAICompatibleProvider):
    PROVIDER_NAME = "openrouter"
    EXTRA_HEADERS = {"X-Title": "Auto Reply Bot"}


class GroqProvider(OpenAICompatibleProvider):
    PROVIDER_NAME = "groq"
