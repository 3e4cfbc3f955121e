"""Single-value in-memory cache with an expiry window."""

import time
from typing import Any, Callable, Optional

MISSING = object()


class TimedCache:
    """
    Holds one value together with the time it was stored

    `get()` returns the value while `now - stored_at < ttl` and MISSING
    afterwards. The clock is injectable so expiry can be tested without
    sleeping.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl < 0:
            raise ValueError("ttl cannot be negative")
        self.ttl = ttl
        self._clock = clock
        self._value: Any = MISSING
        self._stored_at: Optional[float] = None

    def get(self) -> Any:
        if self._stored_at is None:
            return MISSING
        if self._clock() - self._stored_at >= self.ttl:
            return MISSING
        return self._value

    def set(self, value: Any) -> None:
        self._value = value
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        self._value = MISSING
        self._stored_at = None

    @property
    def age(self) -> Optional[float]:
        if self._stored_at is None:
            return None
        return self._clock() - self._stored_at


__all__ = ["TimedCache", "MISSING"]
