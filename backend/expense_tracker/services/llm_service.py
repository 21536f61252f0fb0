"""
LLM providers for receipt structuring.

Supports:
- Ollama (local, default)
- OpenAI (cloud)

Providers only move text in and out; parsing the response is the job of
``receipt_extractor``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import ollama
from openai import OpenAI, OpenAIError

from expense_tracker.config import settings
from expense_tracker.exceptions import ParseError

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Abstract base class for text completion providers."""

    name = "llm"

    @abstractmethod
    def complete(self, prompt: str) -> str:
        """
        Send a single user prompt and return the raw response text.

        Raises:
            ParseError: the provider could not produce a response
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether the provider can be reached."""


class OllamaProvider(LLMProvider):
    """Provider backed by a local Ollama server."""

    name = "ollama"

    def __init__(
        self,
        host: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        client: Optional[ollama.Client] = None,
    ):
        self.host = host or settings.OLLAMA_HOST
        self.model = model or settings.TEXT_MODEL
        self.timeout = timeout or settings.OLLAMA_TIMEOUT

        if client is not None:
            self.client = client
        else:
            timeout_obj = httpx.Timeout(self.timeout, connect=10.0)
            self.client = ollama.Client(host=self.host, timeout=timeout_obj)

    def complete(self, prompt: str) -> str:
        try:
            response = self.client.generate(
                model=self.model,
                prompt=prompt,
                options={
                    "temperature": settings.LLM_TEMPERATURE,  # Low temperature for structured output
                    "num_predict": settings.LLM_MAX_TOKENS,
                },
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as e:
            logger.error(f"Ollama request to {self.host} failed: {e}")
            raise ParseError(f"Model request failed: {e}") from e

        return response.get("response", "") or ""

    def is_available(self) -> bool:
        try:
            self.client.list()
            return True
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError):
            return False


class OpenAIProvider(LLMProvider):
    """Provider backed by the OpenAI chat completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self.model = model or settings.OPENAI_MODEL
        self.api_key = api_key or settings.OPENAI_API_KEY

        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = OpenAI(api_key=self.api_key)
        else:
            logger.warning("OPENAI_API_KEY is not set; OpenAI provider is unavailable")
            self.client = None

    def complete(self, prompt: str) -> str:
        if not self.client:
            raise ParseError("OpenAI client not initialized (missing API key)")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=settings.LLM_TEMPERATURE,
                max_tokens=settings.LLM_MAX_TOKENS,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise ParseError(f"Model request failed: {e}") from e

        return response.choices[0].message.content or ""

    def is_available(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.models.list()
            return True
        except OpenAIError:
            return False


def get_llm_provider(provider: Optional[str] = None) -> LLMProvider:
    """
    Factory for the configured provider.

    Args:
        provider: 'ollama' or 'openai' (defaults to settings.LLM_PROVIDER)

    Returns:
        LLMProvider instance
    """
    provider = (provider or settings.LLM_PROVIDER).lower()
    if provider == "openai":
        return OpenAIProvider()
    if provider == "ollama":
        return OllamaProvider()
    raise ValueError(f"Unknown LLM provider: {provider}")
