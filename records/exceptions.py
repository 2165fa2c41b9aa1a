"""
Error types raised by the records services.

The JSON views translate them into HTTP responses; anything that is not a
``RecordsError`` is treated as an unexpected failure.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class RecordsError(Exception):
    """Base exception for all record-keeping errors."""

    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(RecordsError):
    """Raised when a referenced record does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(RecordsError):
    """Raised when a write would violate a uniqueness rule."""

    default_code = "CONFLICT"


class ValidationMismatchError(RecordsError):
    """Raised when related records do not line up (course mismatch, bad payload)."""

    default_code = "VALIDATION_FAILED"


class PrerequisiteBlockedError(RecordsError):
    """Raised when a standard delete is blocked by dependent records."""

    default_code = "PREREQUISITE_FAILED"

    def __init__(self, message: str, blocking_code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.blocking_code = blocking_code


class PermissionDeniedError(RecordsError):
    """Raised when the acting account may not perform the operation."""

    status_code = 403
    default_code = "FORBIDDEN"
