"""Exception taxonomy for the RAG pipeline.

Upstream errors carry the name of the service that raised them so the HTTP
layer and the metrics can report which dependency failed.
"""


class RAGError(Exception):
    """Base class for all pipeline errors."""

    pass


class ConfigError(RAGError):
    """A required credential or setting is missing."""

    pass


class InputValidationError(RAGError):
    """Caller input is out of bounds (empty or oversized question, bad file)."""

    pass


class UnsupportedFileTypeError(InputValidationError):
    """Uploaded file type has no text extractor."""

    pass


class NotFoundError(RAGError):
    """Requested document or chat session does not exist."""

    pass


class DimensionMismatchError(RAGError):
    """Vectors (or an embedding and its expected shape) differ in length."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class UpstreamError(RAGError):
    """A third-party service call failed."""

    reason = "upstream_error"

    def __init__(self, message: str, *, service: str) -> None:
        super().__init__(message)
        self.service = service


class UpstreamAuthError(UpstreamError):
    """Upstream rejected the credential (HTTP 401)."""

    reason = "auth"


class UpstreamForbiddenError(UpstreamError):
    """Upstream refused access for a valid-looking credential (HTTP 403)."""

    reason = "forbidden"


class UpstreamRateLimitedError(UpstreamError):
    """Upstream throttled the request (HTTP 429)."""

    reason = "rate_limited"


class QuotaExceededError(UpstreamError):
    """Upstream quota is exhausted."""

    reason = "quota"


class UpstreamTimeoutError(UpstreamError):
    """Upstream call exceeded the configured timeout."""

    reason = "timeout"


class UpstreamEmptyResponseError(UpstreamError):
    """Upstream returned a blank result."""

    reason = "empty_response"


class EmbeddingFailure(UpstreamError):
    """Embedding call failed for any other reason."""

    reason = "embedding_failure"


class GenerationFailure(UpstreamError):
    """Generation call failed for any other reason."""

    reason = "generation_failure"
