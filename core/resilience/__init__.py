"""
Core Resilience — Concurrency Primitives.

Provides guards for operations that must not overlap:
- InFlightGuard: Skip re-entrant work on a scope already being processed
"""
from core.resilience.inflight import (
    InFlightGuard,
    InFlightRecord,
    scope_key,
)

__all__ = [
    "InFlightGuard",
    "InFlightRecord",
    "scope_key",
]
