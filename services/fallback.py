"""
Generative Fallback - Bounded LLM call with fixed degradation text
==================================================================

Wraps one call to the configured LLM provider under a hard timeout.
Whatever goes wrong upstream, callers get a string back.
"""

import asyncio
import time
from typing import Optional

from core.config import ReplyConfig
from core.exceptions import LLMError
from core.logging import get_logger
from llm.base import BaseLLMProvider

logger = get_logger("services.fallback")


class GenerativeFallback:
    """
    Generates a reply for text no rule answered.

    The system instruction comes from configuration; message text is
    only passed as the user prompt.

    Example:
        fallback = GenerativeFallback(create_llm_provider(config), config.reply)
        text = await fallback.generate("Are you free tonight?")
    """

    def __init__(self, provider: Optional[BaseLLMProvider], config: Optional[ReplyConfig] = None):
        self.provider = provider
        self.config = config or ReplyConfig()

    async def generate(self, text: str) -> str:
        """
        Generate a reply, never raising.

        Returns:
            Generated text, ``empty_text`` for an empty generation, or
            ``fallback_text`` on timeout and upstream failure
        """
        if self.provider is None:
            logger.warning("No LLM provider configured, using fallback text")
            return self.config.fallback_text

        start = time.time()
        try:
            response = await asyncio.wait_for(
                self.provider.generate(text, system=self.config.system_instruction),
                timeout=self.config.generate_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Generation timed out after {self.config.generate_timeout}s")
            return self.config.fallback_text
        except LLMError as e:
            logger.error(f"Generation failed: {e}")
            return self.config.fallback_text
        except Exception as e:
            logger.error(f"Unexpected generation error: {e}", exc_info=True)
            return self.config.fallback_text

        content = (response.content or "").strip()
        if not content:
            logger.warning("Provider returned an empty generation")
            return self.config.empty_text

        logger.info(
            f"Generated reply in {int((time.time() - start) * 1000)}ms",
            extra={"model": response.model, "length": len(content)}
        )
        return content

    async def aclose(self) -> None:
        if self.provider is not None:
            await self.provider.aclose()
