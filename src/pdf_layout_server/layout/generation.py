"""Text generation clients used for layout analysis.

The analyzer only depends on the ``GenerationClient`` protocol: one call,
prompt in, text out, ``ModelError`` on failure. Rate limits and server
errors are retried here, inside the client; the analyzer never retries.
"""

import os
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from ..logger import logger

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_TIMEOUT_SECONDS = float(os.getenv("LAYOUT_MODEL_TIMEOUT_SECONDS", "120"))
MAX_RETRIES = 3
INITIAL_RETRY_DELAY_SECONDS = 1

PROVIDERS = ("anthropic", "openai")


class ModelError(RuntimeError):
    """Raised when the generation capability cannot produce a response."""


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float = float(os.getenv("LAYOUT_TEMPERATURE", "0.2"))
    max_output_tokens: int = int(os.getenv("LAYOUT_MAX_OUTPUT_TOKENS", "8192"))


class GenerationClient(Protocol):
    def generate(self, prompt: str, options: GenerationOptions) -> str:
        """Return the model's text for ``prompt``; raise ``ModelError`` on failure."""
        ...


class _RetryingClient:
    """Shared retry loop for SDK clients with the same error hierarchy shape."""

    provider = ""
    _rate_limit_error: type[Exception] = Exception
    _status_error: type[Exception] = Exception
    _timeout_error: type[Exception] = Exception
    _api_error: type[Exception] = Exception

    def __init__(self, model: str):
        self.model = model

    def _call_with_retry(self, call: Callable[[], str]) -> str:
        last_error = None

        for attempt in range(MAX_RETRIES):
            try:
                return call()

            except self._rate_limit_error as e:
                last_error = str(e)
                delay = INITIAL_RETRY_DELAY_SECONDS * (2**attempt)  # 1s, 2s, 4s
                logger.warn(
                    "rate limit hit, retrying",
                    provider=self.provider,
                    attempt=attempt + 1,
                    max_retries=MAX_RETRIES,
                    delay_seconds=delay,
                    error=last_error,
                )
                time.sleep(delay)

            except self._timeout_error as e:
                logger.error("generation timed out", provider=self.provider, error=str(e))
                raise ModelError(f"{self.provider} request timed out: {e}") from e

            except self._status_error as e:
                last_error = str(e)
                status_code = getattr(e, "status_code", 0)
                if status_code < 500:
                    logger.error(
                        "generation request rejected",
                        provider=self.provider,
                        status_code=status_code,
                        error=last_error,
                    )
                    raise ModelError(f"{self.provider} rejected the request: {e}") from e
                delay = INITIAL_RETRY_DELAY_SECONDS * (2**attempt)
                logger.warn(
                    "server error, retrying",
                    provider=self.provider,
                    attempt=attempt + 1,
                    max_retries=MAX_RETRIES,
                    delay_seconds=delay,
                    status_code=status_code,
                    error=last_error,
                )
                time.sleep(delay)

            except self._api_error as e:
                logger.error("generation failed", provider=self.provider, error=str(e))
                raise ModelError(f"{self.provider} request failed: {e}") from e

        logger.error(
            "generation failed after retries",
            provider=self.provider,
            max_retries=MAX_RETRIES,
            error=last_error,
        )
        raise ModelError(
            f"{self.provider} request failed after {MAX_RETRIES} attempts: {last_error}"
        )


class AnthropicGenerationClient(_RetryingClient):
    """Generation client backed by the Anthropic Messages API."""

    provider = "anthropic"
    _rate_limit_error = anthropic.RateLimitError
    _status_error = anthropic.APIStatusError
    _timeout_error = anthropic.APITimeoutError
    _api_error = anthropic.APIError

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the client.

        Args:
            api_key: Anthropic API key. If not provided, uses ANTHROPIC_API_KEY env var.
            model: Model name. If not provided, uses LAYOUT_ANTHROPIC_MODEL env var.
            timeout_seconds: Per-request timeout.
        """
        super().__init__(
            model or os.getenv("LAYOUT_ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL)
        )
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError(
                "Anthropic API key required: provide api_key or set ANTHROPIC_API_KEY"
            )
        # Retries are handled by _call_with_retry
        self._client = Anthropic(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    def generate(self, prompt: str, options: GenerationOptions) -> str:
        def call() -> str:
            start = time.perf_counter()
            response = self._client.messages.create(
                model=self.model,
                max_tokens=options.max_output_tokens,
                temperature=options.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
            text = "".join(
                block.text for block in response.content if getattr(block, "type", "") == "text"
            )
            if not text:
                raise ModelError("Empty response from Anthropic API")
            if response.stop_reason == "max_tokens":
                logger.warn("generation hit max tokens, response truncated", model=self.model)
            logger.info(
                "generation completed",
                provider=self.provider,
                model=self.model,
                response_length=len(text),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return text

        return self._call_with_retry(call)


class OpenAIGenerationClient(_RetryingClient):
    """Generation client backed by the OpenAI Chat Completions API."""

    provider = "openai"
    _rate_limit_error = openai.RateLimitError
    _status_error = openai.APIStatusError
    _timeout_error = openai.APITimeoutError
    _api_error = openai.APIError

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the client.

        Args:
            api_key: OpenAI API key. If not provided, uses OPENAI_API_KEY env var.
            model: Model name. If not provided, uses LAYOUT_OPENAI_MODEL env var.
            timeout_seconds: Per-request timeout.
        """
        super().__init__(model or os.getenv("LAYOUT_OPENAI_MODEL", DEFAULT_OPENAI_MODEL))
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OpenAI API key required: provide api_key or set OPENAI_API_KEY"
            )
        self._client = OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)

    def generate(self, prompt: str, options: GenerationOptions) -> str:
        def call() -> str:
            start = time.perf_counter()
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=options.max_output_tokens,
                temperature=options.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
            if not response.choices or not response.choices[0].message.content:
                raise ModelError("Empty response from OpenAI API")
            choice = response.choices[0]
            if choice.finish_reason == "length":
                logger.warn("generation hit max tokens, response truncated", model=self.model)
            text = choice.message.content
            logger.info(
                "generation completed",
                provider=self.provider,
                model=self.model,
                response_length=len(text),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return text

        return self._call_with_retry(call)


def get_generation_client(provider: str | None = None) -> GenerationClient:
    """Create the generation client for ``provider``.

    Reads the LAYOUT_MODEL_PROVIDER env var when ``provider`` is not given:
        - "anthropic" (default): AnthropicGenerationClient
        - "openai": OpenAIGenerationClient
    """
    provider = (provider or os.getenv("LAYOUT_MODEL_PROVIDER", "anthropic")).lower()
    if provider == "anthropic":
        return AnthropicGenerationClient()
    if provider == "openai":
        return OpenAIGenerationClient()
    raise ValueError(f"Unknown model provider {provider!r}, expected one of {PROVIDERS}")
