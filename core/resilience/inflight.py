"""
In-flight guard: skip re-entrant work on the same scope.

A caller reserves a scope key before starting a pass and releases it when
done. While a key is held, further reservations for it fail, so a second
caller skips instead of queueing behind the first. Keys are deterministic
so the same scope always maps to the same key.
"""
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator


def scope_key(operation: str, scope_id: str) -> str:
    """Build the key for one operation on one scope, e.g. ``project_sync:<id>``."""
    return f"{operation}:{scope_id}"


@dataclass
class InFlightRecord:
    """A held reservation."""
    key: str
    acquired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InFlightGuard:
    """Set of scope keys currently being worked on.

    Single event loop only: reserve() does no awaiting, so check-and-insert
    cannot interleave with another coroutine.
    """

    def __init__(self):
        self._held: dict[str, InFlightRecord] = {}

    def is_held(self, key: str) -> bool:
        return key in self._held

    def reserve(self, key: str) -> InFlightRecord | None:
        """Reserve a key. Returns None if it is already held."""
        if key in self._held:
            return None
        record = InFlightRecord(key=key)
        self._held[key] = record
        return record

    def release(self, key: str) -> bool:
        """Release a key. Returns False if it was not held."""
        return self._held.pop(key, None) is not None

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        """Hold ``key`` for the duration of the block.

        Yields True when the reservation succeeded and False when another
        pass already holds the key; only a successful reservation is
        released on exit.
        """
        record = self.reserve(key)
        try:
            yield record is not None
        finally:
            if record is not None:
                self.release(key)

    @property
    def held_count(self) -> int:
        return len(self._held)
