"""Shared utilities for the trip import engine."""

from .errors import ApiError, ErrorCode
from .exceptions import (
    ConfigurationError,
    ImportItemNotFound,
    InvalidImportState,
    OcrFailedError,
    TripImportError,
    UpstreamError,
)
from .hashing import ContentHashUtil

__all__ = [
    "ApiError",
    "ErrorCode",
    "TripImportError",
    "ConfigurationError",
    "UpstreamError",
    "OcrFailedError",
    "ImportItemNotFound",
    "InvalidImportState",
    "ContentHashUtil",
]
