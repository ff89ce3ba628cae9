"""Embedding client for the Voyage AI embeddings API.

Security: Reads the API key from settings only, never hardcoded.
"""

import logging
import time
from typing import Any, Protocol

import httpx

from backend.app.config import Settings
from backend.app.docs.chunker import truncate_text
from backend.app.errors import (
    ConfigError,
    DimensionMismatchError,
    EmbeddingFailure,
    RAGError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
)
from backend.app.utils.logging import StructuredUpstreamLogger
from backend.app.utils.metrics import UpstreamMetrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "embedding"


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    async def embed(self, text: str) -> list[float]:
        """Embed text into a fixed-length vector.

        Raises:
            ConfigError: No credential configured
            DimensionMismatchError: Vector has the wrong length
            UpstreamError: Any provider failure
        """
        ...


class VoyageEmbeddingClient:
    """Voyage AI-backed embedding client."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "voyage-3-large",
        base_url: str = "https://api.voyageai.com/v1",
        dimensions: int = 1024,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        metrics: UpstreamMetrics | None = None,
        call_logger: StructuredUpstreamLogger | None = None,
    ) -> None:
        """Initialize Voyage client.

        Args:
            api_key: Voyage API key (None or empty raises ConfigError on use)
            model: Embedding model name
            base_url: API base URL
            dimensions: Expected vector length
            timeout_seconds: Per-call timeout
            client: Optional httpx client (for testing with mocks)
            metrics: Metrics recorder (optional, defaults to no-op)
            call_logger: Structured logger (optional)
        """
        self._api_key = api_key
        self.model = model
        self._url = f"{base_url.rstrip('/')}/embeddings"
        self.dimensions = dimensions
        self._timeout = timeout_seconds
        self._client = client
        self._metrics = metrics or UpstreamMetrics()
        self._call_logger = call_logger or StructuredUpstreamLogger()

    async def embed(self, text: str) -> list[float]:
        """Generate an embedding for text."""
        if not self._api_key:
            raise ConfigError("VOYAGE_API_KEY is not configured")

        logger.debug(f"Generating embedding with {self.model}: {truncate_text(text, 80)!r}")
        start = time.monotonic()

        try:
            embedding = await self._request(text)
        except RAGError as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            reason = e.reason if isinstance(e, UpstreamError) else "dimension_mismatch"
            self._metrics.record_latency(SERVICE_NAME, "error", elapsed_ms)
            self._metrics.inc_error(SERVICE_NAME, reason)
            self._call_logger.log_call(
                SERVICE_NAME, "embed", "error", elapsed_ms, error_reason=reason
            )
            raise

        elapsed_ms = (time.monotonic() - start) * 1000
        self._metrics.record_latency(SERVICE_NAME, "success", elapsed_ms)
        self._call_logger.log_call(SERVICE_NAME, "embed", "success", elapsed_ms)
        return embedding

    def _http(self) -> httpx.AsyncClient:
        """Shared connection pool, created on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, text: str) -> list[float]:
        """POST to the embeddings endpoint and validate the vector."""
        try:
            response = await self._http().post(
                self._url,
                json={"input": text, "model": self.model},
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            data: Any = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Embedding request timed out after {self._timeout:g}s", service=SERVICE_NAME
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Voyage AI API error: {status} {e.response.text[:200]}")
            if status == 401:
                raise UpstreamAuthError(
                    "Voyage AI API key is invalid", service=SERVICE_NAME
                ) from e
            if status == 429:
                raise UpstreamRateLimitedError(
                    "Voyage AI rate limit exceeded", service=SERVICE_NAME
                ) from e
            raise EmbeddingFailure(
                f"Failed to generate embedding: HTTP {status}", service=SERVICE_NAME
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise EmbeddingFailure(
                f"Failed to generate embedding: {e}", service=SERVICE_NAME
            ) from e

        try:
            embedding = [float(v) for v in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingFailure("Invalid response from Voyage AI", service=SERVICE_NAME) from e

        if len(embedding) != self.dimensions:
            raise DimensionMismatchError(self.dimensions, len(embedding))

        return embedding


def build_embedding_client(
    settings: Settings, metrics: UpstreamMetrics | None = None
) -> VoyageEmbeddingClient:
    """Factory: embedding client configured from settings."""
    api_key = settings.voyage_api_key.get_secret_value() if settings.voyage_api_key else None
    return VoyageEmbeddingClient(
        api_key,
        model=settings.embedding_model,
        base_url=settings.voyage_base_url,
        dimensions=settings.embedding_dimensions,
        timeout_seconds=settings.upstream_timeout_seconds,
        metrics=metrics,
    )
