"""
Base LLM Provider - Abstract base class for generative providers
================================================================

This module defines the interface every provider implements: a single
asynchronous ``generate`` call over ``httpx.AsyncClient``. Providers
raise ``LLMError`` for every failure; turning failures into a fixed
reply is the fallback invoker's job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import time

import httpx

from core.config import LLMConfig
from core.exceptions import LLMError
from core.logging import get_logger

logger = get_logger("llm.base")


@dataclass
class LLMResponse:
    """
    Response from a generative provider.

    Attributes:
        content (str): Generated text
        model (str): Model that generated the response
        provider (str): Provider name
        tokens_used (int): Total tokens reported by the provider
        latency_ms (int): Request latency in milliseconds
        finish_reason (str): Reason for completion
        metadata (dict): Additional provider-specific metadata
    """
    content: str
    model: str
    provider: str
    tokens_used: int = 0
    latency_ms: int = 0
    finish_reason: str = "stop"
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseLLMProvider(ABC):
    """
    Abstract base class for generative providers.

    Subclasses implement ``_build_request`` and ``_parse_response``; the
    base class owns the HTTP call and maps transport and status failures
    to ``LLMError``.

    Example:
        provider = GeminiProvider(config.llm)
        response = await provider.generate("Hello", system="Be brief.")
        print(response.content)
    """

    PROVIDER_NAME = "base"

    def __init__(self, config: LLMConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            config: LLM configuration section
            client: Optional preconfigured HTTP client (tests inject one
                backed by ``httpx.MockTransport``)
        """
        self.config = config
        self.api_base = config.resolved_api_base()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._client

    @abstractmethod
    def _build_request(self, prompt: str, system: Optional[str]) -> Dict[str, Any]:
        """
        Build request arguments.

        Returns:
            Dict with ``url``, ``json`` and ``headers`` keys
        """

    @abstractmethod
    def _parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        """
        Extract the generated text.

        Raises:
            LLMError: If the payload does not carry text
        """

    async def generate(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        """
        Generate text for a prompt.

        Args:
            prompt: User text
            system: Fixed instruction constraining the reply

        Returns:
            LLMResponse with generated text and metadata

        Raises:
            LLMError: On transport errors, non-2xx responses or malformed payloads
        """
        request = self._build_request(prompt, system)
        start_time = time.time()

        try:
            response = await self._get_client().post(
                request["url"],
                json=request["json"],
                headers=request.get("headers"),
            )
        except httpx.HTTPError as e:
            raise LLMError(
                f"{self.PROVIDER_NAME} request failed: {e.__class__.__name__}",
                details={"error": str(e)}
            )

        if response.status_code < 200 or response.status_code >= 300:
            raise LLMError(
                f"{self.PROVIDER_NAME} API error",
                details={"status": response.status_code, "body": response.text[:200]}
            )

        try:
            data = response.json()
        except ValueError:
            raise LLMError(f"{self.PROVIDER_NAME} returned invalid JSON")

        if not isinstance(data, dict):
            raise LLMError(f"{self.PROVIDER_NAME} returned an unexpected payload")

        result = self._parse_response(data)
        result.latency_ms = self._measure_latency(start_time)
        return result

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _measure_latency(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
