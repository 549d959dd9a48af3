"""
YoursAI - Error Taxonomy
=========================
Every failure that crosses a module boundary is raised as a subclass of
``YoursAIError`` so the orchestrators can map it to a single response
shape.  ``http_status`` is the status the endpoints return when the
error terminates a request; errors that never terminate one (retrieval,
transient upstream) still carry a value for logging.

Root causes travel in ``__cause__`` (``raise ... from exc``) and are only
ever logged, never sent to the caller.
"""

from __future__ import annotations


class YoursAIError(Exception):
    """
    Base class for domain errors.

    Attributes:
        message:     Human-readable description (safe to log).
        http_status: Status code used when the error ends a request.
    """

    http_status: int = 500

    def __init__(self, message: str, http_status: int | None = None) -> None:
        self.message = message
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)


class AuthError(YoursAIError):
    """Missing or malformed bearer credential."""

    http_status = 401


class ValidationError(YoursAIError):
    """Request body has the wrong shape or violates a limit."""

    http_status = 400


class PayloadTooLargeError(ValidationError):
    """Document exceeds the configured byte limit."""

    http_status = 413


class SecretResolutionError(YoursAIError):
    """A named secret could not be resolved."""


class UpstreamTransientError(YoursAIError):
    """The AI API kept answering with a non-success status after all retries."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message, http_status=502)
        self.status_code = status_code


class UpstreamFatalError(YoursAIError):
    """Transport-level failure (connection, DNS, timeout) talking to an AI API."""


class UpstreamResponseError(UpstreamFatalError):
    """The AI API answered 2xx with a body that cannot be interpreted."""


class EmptyCompletionError(UpstreamResponseError):
    """The completion response carried no candidates."""


class EmbeddingError(YoursAIError):
    """The embedding API call failed or returned an unusable vector."""


class EmbeddingDimensionError(EmbeddingError):
    """A vector's length does not match the configured embedding dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding has {actual} dimensions, expected {expected}")
        self.expected = expected
        self.actual = actual


class StorageError(YoursAIError):
    """A conversation or knowledge store operation failed."""


class RetrievalError(YoursAIError):
    """Retrieval augmentation failed; the turn continues without it."""
