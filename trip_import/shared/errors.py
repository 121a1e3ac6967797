"""API error taxonomy shared by services and the HTTP layer."""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    BAD_REQUEST = "BAD_REQUEST"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    MISCONFIGURED = "MISCONFIGURED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


DEFAULT_STATUS = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.UPSTREAM_ERROR: 502,
    ErrorCode.MISCONFIGURED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ApiError(Exception):
    """Error rendered as ``{"error": {code, message, requestId, details}}``."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code or DEFAULT_STATUS[code]
        self.details = details
