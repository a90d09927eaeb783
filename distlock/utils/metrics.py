"""Prometheus metrics for lock operations.

All metric objects are defined at import time on the default registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

lock_acquire_total = Counter(
    "distlock_acquire_total",
    "Lock acquisition attempts",
    ["outcome"],
)
lock_release_total = Counter(
    "distlock_release_total",
    "Lock release attempts",
    ["outcome"],
)
lock_renew_total = Counter(
    "distlock_renew_total",
    "Lease refresh ticks",
    ["outcome"],
)
lock_hold_seconds = Histogram(
    "distlock_hold_seconds",
    "Time a guarded section held its lock",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0],
)
