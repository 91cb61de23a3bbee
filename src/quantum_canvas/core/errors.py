"""Error taxonomy for Quantum Canvas.

Every failure that should reach the browser as a structured JSON envelope is
raised as a :class:`CanvasError` subclass.  Each class carries the HTTP status
code it maps to, so route handlers never build error responses by hand; the
FastAPI exception handler in :mod:`quantum_canvas.api.main` renders them.

Hierarchy
---------
::

    CanvasError
    ├── InvalidInputError          400  missing/invalid form field or upload
    │   ├── PromptError            400  empty or missing prompt
    │   └── InvalidOperationError  400  unknown manipulation operation
    ├── MissingCredentialsError    401  provider API key not configured
    ├── ProviderError              500  generic provider failure
    │   ├── QuotaExceededError     429  provider quota / rate limit
    │   ├── AccessDeniedError      403  key rejected by the provider
    │   ├── ProviderUnavailableError 503  provider down or timed out
    │   └── UnexpectedResponseError  400  model answered with the wrong shape
    └── ImageProcessingError       500  decode/transform/encode failure
"""

from __future__ import annotations


class CanvasError(Exception):
    """Base class for all errors rendered as a JSON error envelope.

    Attributes:
        status_code: HTTP status used when the error reaches a handler.
        message: Short human-readable message (rendered as ``error``).
        details: Optional diagnostic text (rendered as ``details``).
    """

    status_code: int = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_envelope(self) -> dict:
        """Return the JSON error envelope for this error."""
        body: dict = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidInputError(CanvasError):
    """A request field is missing or malformed."""

    status_code = 400


class PromptError(InvalidInputError):
    """The prompt is missing or empty."""


class InvalidOperationError(InvalidInputError):
    """The requested manipulation operation is not one of the known names."""


class MissingCredentialsError(CanvasError):
    """The provider API key is not configured on the server."""

    status_code = 401


class ProviderError(CanvasError):
    """The generative provider failed in a way we could not classify."""

    status_code = 500


class QuotaExceededError(ProviderError):
    """The provider rejected the call because a quota or rate limit was hit.

    The caller is told to try again later; nothing is retried in-request.
    """

    status_code = 429

    def __init__(
        self,
        message: str = "API quota exceeded",
        details: str | None = None,
        retry_after: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after

    def to_envelope(self) -> dict:
        body = super().to_envelope()
        if self.retry_after:
            body["retryAfter"] = self.retry_after
        return body


class AccessDeniedError(ProviderError):
    """The provider refused the configured credentials or model access."""

    status_code = 403


class ProviderUnavailableError(ProviderError):
    """The provider could not be reached, timed out, or reported an outage."""

    status_code = 503


class UnexpectedResponseError(ProviderError):
    """The provider answered, but not with the content we asked for."""

    status_code = 400


class ImageProcessingError(CanvasError):
    """Decoding, transforming or encoding an uploaded image failed."""

    status_code = 500
