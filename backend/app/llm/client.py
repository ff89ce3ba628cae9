"""LLM client for answer generation.

Talks to Gemini through its OpenAI-compatible endpoint using the openai SDK,
so any OpenAI-compatible provider can be swapped in via settings.

Security: Reads API key from settings only, never hardcoded.
"""

import asyncio
import logging
import time
from typing import Protocol

import openai
from openai import AsyncOpenAI

from backend.app.config import Settings
from backend.app.docs.chunker import truncate_text
from backend.app.errors import (
    ConfigError,
    GenerationFailure,
    QuotaExceededError,
    UpstreamAuthError,
    UpstreamEmptyResponseError,
    UpstreamError,
    UpstreamForbiddenError,
    UpstreamTimeoutError,
)
from backend.app.utils.logging import StructuredUpstreamLogger
from backend.app.utils.metrics import UpstreamMetrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "generation"


class GenerationClient(Protocol):
    """Protocol for LLM client implementations."""

    async def generate(self, prompt: str) -> str:
        """Generate natural-language text for a prompt.

        Raises:
            ConfigError: No credential configured
            UpstreamError: Any provider failure, including blank output
        """
        ...


class OpenAICompatibleClient:
    """Generation client backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gemini-2.5-flash",
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        client: AsyncOpenAI | None = None,
        metrics: UpstreamMetrics | None = None,
        call_logger: StructuredUpstreamLogger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Provider API key (None or empty raises ConfigError on use)
            model: Model name
            base_url: OpenAI-compatible base URL (None uses the SDK default)
            timeout_seconds: Hard timeout raced against each call
            client: Optional pre-built AsyncOpenAI (for testing with mocks)
            metrics: Metrics recorder (optional, defaults to no-op)
            call_logger: Structured logger (optional)
        """
        self.model = model
        self._timeout = timeout_seconds
        self._metrics = metrics or UpstreamMetrics()
        self._call_logger = call_logger or StructuredUpstreamLogger()

        if client is not None:
            self._client: AsyncOpenAI | None = client
        elif api_key:
            # Retries are the caller's decision
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        else:
            self._client = None

    async def generate(self, prompt: str) -> str:
        """Generate a response, racing the call against the timeout."""
        if self._client is None:
            raise ConfigError("GEMINI_API_KEY is not configured")

        logger.info(f"Generating AI response with {self.model}")
        start = time.monotonic()

        try:
            text = await self._complete(self._client, prompt)
        except UpstreamError as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            self._metrics.record_latency(SERVICE_NAME, "error", elapsed_ms)
            self._metrics.inc_error(SERVICE_NAME, e.reason)
            self._call_logger.log_call(
                SERVICE_NAME, "generate", "error", elapsed_ms, error_reason=e.reason
            )
            raise

        elapsed_ms = (time.monotonic() - start) * 1000
        self._metrics.record_latency(SERVICE_NAME, "success", elapsed_ms)
        self._call_logger.log_call(SERVICE_NAME, "generate", "success", elapsed_ms)
        logger.debug(f"Response preview: {truncate_text(text, 100)!r}")
        return text

    async def _complete(self, client: AsyncOpenAI, prompt: str) -> str:
        """Call chat completions and map provider errors to the taxonomy."""
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            raise UpstreamTimeoutError(
                f"AI response generation timed out after {self._timeout:g}s",
                service=SERVICE_NAME,
            ) from e
        except openai.AuthenticationError as e:
            raise UpstreamAuthError(
                "Generation API key is invalid or missing", service=SERVICE_NAME
            ) from e
        except openai.PermissionDeniedError as e:
            raise UpstreamForbiddenError(
                "Generation API access forbidden. Please check your API key.",
                service=SERVICE_NAME,
            ) from e
        except openai.RateLimitError as e:
            raise QuotaExceededError(
                "Generation API quota exceeded", service=SERVICE_NAME
            ) from e
        except openai.BadRequestError as e:
            # Gemini reports rejected keys as 400s
            message = str(e)
            if "leaked" in message:
                raise UpstreamForbiddenError(
                    "Generation API key has been blocked; configure a new GEMINI_API_KEY",
                    service=SERVICE_NAME,
                ) from e
            if "API_KEY" in message or "API key" in message:
                raise UpstreamAuthError(
                    "Generation API key is invalid or missing", service=SERVICE_NAME
                ) from e
            raise GenerationFailure(
                f"Failed to generate AI response: {message}", service=SERVICE_NAME
            ) from e
        except openai.OpenAIError as e:
            raise GenerationFailure(
                f"Failed to generate AI response: {e}", service=SERVICE_NAME
            ) from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""

        if not text.strip():
            raise UpstreamEmptyResponseError(
                "Generation service returned an empty response", service=SERVICE_NAME
            )

        return text


def build_generation_client(
    settings: Settings, metrics: UpstreamMetrics | None = None
) -> OpenAICompatibleClient:
    """Factory: generation client configured from settings."""
    api_key = settings.gemini_api_key.get_secret_value() if settings.gemini_api_key else None
    return OpenAICompatibleClient(
        api_key,
        model=settings.generation_model,
        base_url=settings.generation_base_url,
        timeout_seconds=settings.upstream_timeout_seconds,
        metrics=metrics,
    )
