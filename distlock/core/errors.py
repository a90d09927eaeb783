"""Shared error codes and exceptions for lock operations.

Contention and token mismatch are not errors: they are reported as ``False``
by the lock primitive. Exceptions are reserved for misuse and for a store
that cannot be reached or answers with an error.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_ACQUIRED = "NOT_ACQUIRED"
    STORE_ERROR = "STORE_ERROR"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class LockError(Exception):
    """Base exception for all lock errors."""

    code: ErrorCode = ErrorCode.STORE_ERROR

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": str(self),
            "detail": self.detail,
        }


class LockConfigurationError(LockError, ValueError):
    """Raised for an empty namespace/token or inconsistent lease timings."""

    code = ErrorCode.INVALID_ARGUMENT


class LockNotAcquiredError(LockError):
    """Raised by a raising ``LockContext`` when another holder owns the lock."""

    code = ErrorCode.NOT_ACQUIRED

    def __init__(self, namespace: str):
        super().__init__(f"Lock '{namespace}' is already held")
        self.namespace = namespace


class LockStoreError(LockError):
    """Raised when the backing store answers an operation with an error."""

    code = ErrorCode.STORE_ERROR


class StoreUnavailableError(LockStoreError):
    """Raised when the backing store cannot be reached in time."""

    code = ErrorCode.STORE_UNAVAILABLE


__all__ = [
    "ErrorCode",
    "LockError",
    "LockConfigurationError",
    "LockNotAcquiredError",
    "LockStoreError",
    "StoreUnavailableError",
]
