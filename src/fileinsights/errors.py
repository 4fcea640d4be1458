"""Exception hierarchy shared by the pipeline, stores and web layer."""

from __future__ import annotations


class FileInsightsError(Exception):
    """Base class for all FileInsights errors."""


class InvalidInputError(FileInsightsError, ValueError):
    """Raised when a caller supplies a missing or malformed argument."""


class ExtractionError(FileInsightsError):
    """Raised when the content of a single file cannot be parsed."""


class StoreError(FileInsightsError):
    """Raised when a metadata store cannot complete a read or write."""
