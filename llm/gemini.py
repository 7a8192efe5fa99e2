"""
Gemini Provider - Google Generative Language API
================================================

Single-turn ``generateContent`` call. The instruction and the user text
are sent as one text part, the instruction first.

Reference: https://ai.google.dev/api/generate-content
"""

from typing import Optional, Dict, Any

from core.exceptions import LLMError
from .base import BaseLLMProvider, LLMResponse


class GeminiProvider(BaseLLMProvider):
    """Provider for Gemini models."""

    PROVIDER_NAME = "gemini"

    def _build_request(self, prompt: str, system: Optional[str]) -> Dict[str, Any]:
        text = f"{system}\n\nUser: {prompt}" if system else prompt
        return {
            "url": f"{self.api_base}/models/{self.config.model}:generateContent",
            "headers": {
                "Content-Type": "application/json",
                "x-goog-api-key": self.config.api_key,
            },
            "json": {
                "contents": [{"parts": [{"text": text}]}],
                "generationConfig": {
                    "temperature": self.config.temperature,
                    "maxOutputTokens": self.config.max_tokens,
                },
            },
        }

    def _parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        try:
            candidate = data["candidates"][0]
            text = candidate["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise LLMError("Gemini response carries no text", details={"keys": list(data)})

        if not isinstance(text, str):
            raise LLMError("Gemini response text is not a string")

        usage = data.get("usageMetadata") or {}
        return LLMResponse(
            content=text,
            model=data.get("modelVersion", self.config.model),
            provider=self.PROVIDER_NAME,
            tokens_used=usage.get("totalTokenCount", 0),
            finish_reason=str(candidate.get("finishReason", "STOP")).lower(),
        )
