"""Single-entry, time-expiring cache for the all-records query."""

import time
from collections.abc import Callable
from typing import Any

DEFAULT_TTL_SECONDS = 3600.0


class RecordCache:
    """Holds the full record list behind one slot with an expiry time.

    Any refresh invalidates the whole entry. There is no locking; a read
    racing a refresh may see the old list until invalidate() runs.

    Args:
        ttl_seconds: Lifetime of a cached entry
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: list[dict[str, Any]] | None = None
        self._expires_at = 0.0

    def get(self) -> list[dict[str, Any]] | None:
        """Return the cached list, or None if empty or expired."""
        if self._records is None:
            return None
        if self._clock() >= self._expires_at:
            self._records = None
            return None
        return self._records

    def set(self, records: list[dict[str, Any]]) -> None:
        self._records = records
        self._expires_at = self._clock() + self.ttl_seconds

    def invalidate(self) -> None:
        self._records = None
        self._expires_at = 0.0
