"""Shared exception classes for the trip import engine."""

from typing import List, Optional


class TripImportError(Exception):
    """Base exception for the import pipeline."""

    pass


class ConfigurationError(TripImportError):
    """Raised when required credentials or environment are missing.

    API layer maps this to MISCONFIGURED (500).
    """

    pass


class UpstreamError(TripImportError):
    """Raised when every provider in a stage failed.

    API layer maps this to UPSTREAM_ERROR (502).
    """

    def __init__(self, message: str, warnings: Optional[List[str]] = None):
        super().__init__(message)
        self.warnings = list(warnings or [])


class OcrFailedError(UpstreamError):
    """Raised when no text acquisition stage produced usable text."""

    pass


class ImportItemNotFound(TripImportError):
    """Raised when an import queue item does not exist for the caller."""

    pass


class InvalidImportState(TripImportError):
    """Raised when an import item cannot take the requested transition."""

    pass


__all__ = [
    "TripImportError",
    "ConfigurationError",
    "UpstreamError",
    "OcrFailedError",
    "ImportItemNotFound",
    "InvalidImportState",
]
