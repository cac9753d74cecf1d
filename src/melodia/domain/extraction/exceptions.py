"""Extraction-specific exceptions for error handling.

These never escape the extraction chain: each backend failure is logged and
the chain moves on to the next backend.
"""


class ExtractionError(Exception):
    """Base exception for audio extraction operations."""

    pass


class BackendUnavailableError(ExtractionError):
    """Raised when a backend cannot be reached or answers with a non-2xx status."""

    pass


class MalformedResponseError(ExtractionError):
    """Raised when a backend payload is not JSON or has an unexpected shape."""

    pass
