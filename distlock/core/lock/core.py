"""Distributed Lock Core.

Provides the pieces every lock backend and orchestrator share:
- Ownership token generation
- Store interface (the three atomic operations the lock relies on)
- Result type of guarded execution
"""

from __future__ import annotations

import math
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from distlock.core.errors import LockConfigurationError

TOKEN_LENGTH = 32


def new_token() -> str:
    """Generate an unpredictable 32-character ownership token."""
    return uuid.uuid4().hex


def to_milliseconds(seconds: float) -> int:
    """Convert a lease duration to whole milliseconds, never below 1."""
    return max(1, math.ceil(seconds * 1000))


def validate_namespace(namespace: str) -> None:
    if not isinstance(namespace, str) or not namespace:
        raise LockConfigurationError("Lock namespace must be a non-empty string")


def validate_token(token: str) -> None:
    if not isinstance(token, str) or not token:
        raise LockConfigurationError("Lock token must be a non-empty string")


def validate_lease(lease_seconds: float, renew_interval_seconds: Optional[float] = None) -> None:
    if lease_seconds <= 0:
        raise LockConfigurationError(
            f"Lease duration must be positive, got {lease_seconds}"
        )
    if renew_interval_seconds is None:
        return
    if renew_interval_seconds <= 0:
        raise LockConfigurationError(
            f"Renew interval must be positive, got {renew_interval_seconds}"
        )
    if renew_interval_seconds >= lease_seconds:
        raise LockConfigurationError(
            "Renew interval must be shorter than the lease duration",
            detail=f"renew_interval={renew_interval_seconds}s lease={lease_seconds}s",
        )


@dataclass
class RunResult:
    """Outcome of a guarded execution."""
    acquired: bool
    result: Any = None
    released: Optional[bool] = None
    token: Optional[str] = None


class LockStore(ABC):
    """Key-value store operations the lock protocol depends on.

    Each operation must be atomic on the store side; the lock never combines
    two calls into one logical step.
    """

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        """Set ``key`` to ``value`` with a TTL only if ``key`` does not exist.

        Args:
            key: Store key
            value: Value to store (the ownership token)
            ttl_seconds: Time-to-live in seconds

        Returns:
            True if the key was newly set, False if it already existed
        """

    @abstractmethod
    async def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete ``key`` only if its current value equals ``expected``.

        Args:
            key: Store key
            expected: Value the key must still hold

        Returns:
            True if the key was deleted, False otherwise
        """

    @abstractmethod
    async def refresh_ttl(self, key: str, ttl_seconds: float) -> bool:
        """Reset the TTL of an existing key, leaving its value unchanged.

        Args:
            key: Store key
            ttl_seconds: New time-to-live in seconds

        Returns:
            True if the key existed and its TTL was reset, False otherwise
        """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Current value of ``key``, or None if absent."""

    async def close(self) -> None:
        """Release store resources."""
        return None
