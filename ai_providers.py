"""
AI Provider Interface

Text-generation providers used by the strategy generator. Each provider makes
exactly one request per call with an explicit timeout and token budget; SDK
level retries are disabled so a failure surfaces to the caller immediately.
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from graph_errors import ApiError

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5"
DEFAULT_OPENAI_MODEL = "gpt-5.2"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TIMEOUT = 30.0  # seconds


class AIProvider(ABC):
    """Abstract base class for AI providers"""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str
    ) -> str:
        """Return the raw text completion for a single user message."""
        pass


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider (Messages API)"""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[Anthropic] = None,
    ):
        self.client = client or Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str
    ) -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ],
                timeout=self.timeout,
            )
        except anthropic.APIStatusError as exc:
            logger.warning("Anthropic request failed with status %s", exc.status_code)
            raise ApiError(exc.status_code) from exc
        except anthropic.APIConnectionError as exc:
            logger.warning("Anthropic request failed: %s", exc)
            raise ApiError(None, type(exc).__name__) from exc

        if not response.content:
            return ""
        return getattr(response.content[0], "text", "") or ""


class OpenAIProvider(AIProvider):
    """OpenAI chat completions provider"""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_OPENAI_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[OpenAI] = None,
    ):
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str
    ) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_completion_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                timeout=self.timeout,
            )
        except openai.APIStatusError as exc:
            logger.warning("OpenAI request failed with status %s", exc.status_code)
            raise ApiError(exc.status_code) from exc
        except openai.APIConnectionError as exc:
            logger.warning("OpenAI request failed: %s", exc)
            raise ApiError(None, type(exc).__name__) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def get_provider(
    api_key: str,
    model: Optional[str] = None,
    provider: str = "anthropic",
    max_tokens: int = DEFAULT_MAX_TOKENS,
    timeout: float = DEFAULT_TIMEOUT,
) -> AIProvider:
    """Factory function to get AI provider

    Args:
        api_key: API key for the provider
        model: Model name (optional, uses default for provider)
        provider: Provider name ('openai' or 'anthropic')
        max_tokens: Completion token budget per request
        timeout: Request timeout in seconds
    """

    if provider.lower() == "anthropic":
        return AnthropicProvider(
            api_key=api_key,
            model=model or DEFAULT_ANTHROPIC_MODEL,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if provider.lower() == "openai":
        return OpenAIProvider(
            api_key=api_key,
            model=model or DEFAULT_OPENAI_MODEL,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise ValueError(f"Invalid AI provider: {provider}. Must be 'openai' or 'anthropic'")
