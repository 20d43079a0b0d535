"""Resilient cached access to remote reads.

Every remote read (holder enumeration, mint info, price and pool
lookups) goes through the same policy:

1. Fresh entry (age < ttl): return it.
2. Last remote call within ``cooldown`` and an entry exists (even
   stale): return the stale entry without a remote call. A failed call
   counts, so an expired entry is retried at most once per cooldown.
3. Circuit breaker open and an entry exists: return the stale entry.
4. A fetch already in flight: wait for it and share
   its outcome.
5. Otherwise call the loader. Success refreshes the entry and the
   cooldown timestamp; failure refreshes only the cooldown timestamp.
   A rate-limit failure returns the last entry if
   there is one, else propagates. Any other failure propagates.
"""

import logging
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

from ..logging.rate_limited import CircuitBreaker, RateLimitedLogger
from .errors import is_rate_limit_error

T = TypeVar("T")

logger = logging.getLogger(__name__)
_throttled = RateLimitedLogger(logger)


class _InFlight(Generic[T]):
    """Shared outcome of one in-flight loader call."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Optional[T] = None
        self.error: Optional[BaseException] = None


class ResilientCache(Generic[T]):
    """Single-entry cache with TTL, cooldown, coalescing and stale fallback."""

    def __init__(
        self,
        loader: Callable[[], T],
        ttl: float,
        cooldown: float,
        is_rate_limited: Callable[[BaseException], bool] = is_rate_limit_error,
        clock: Callable[[], float] = time.monotonic,
        breaker: Optional[CircuitBreaker] = None,
        name: str = "cache",
    ) -> None:
        self._loader = loader
        self.ttl = ttl
        self.cooldown = cooldown
        self._is_rate_limited = is_rate_limited
        self._clock = clock
        self._breaker = breaker
        self.name = name

        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._has_value = False
        self._cached_at: Optional[float] = None
        self._last_fetch_at: Optional[float] = None
        self._inflight: Optional[_InFlight[T]] = None
        self.remote_calls = 0

    def fetch(self) -> T:
        """Return the cached value or load it according to the policy above."""
        with self._lock:
            now = self._clock()
            if self._has_value:
                if now - self._cached_at < self.ttl:
                    return self._value
                if self._last_fetch_at is not None and now - self._last_fetch_at < self.cooldown:
                    return self._value
                if self._breaker is not None and self._breaker.is_open:
                    _throttled.warning(
                        f"{self.name}:breaker",
                        "%s: circuit open, serving stale entry",
                        self.name,
                    )
                    return self._value

            call = self._inflight
            owner = call is None
            if owner:
                call = _InFlight()
                self._inflight = call
                self.remote_calls += 1

        if not owner:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value

        try:
            value = self._loader()
        except Exception as exc:
            with self._lock:
                self._inflight = None
                if self._has_value:
                    self._last_fetch_at = self._clock()
                stale_ok = self._is_rate_limited(exc) and self._has_value
                if self._is_rate_limited(exc) and self._breaker is not None:
                    self._breaker.record_rate_limit()
                if stale_ok:
                    call.value = self._value
                else:
                    call.error = exc
                call.done.set()
            if stale_ok:
                _throttled.warning(
                    f"{self.name}:rate_limited",
                    "%s: rate limited, serving stale entry (%s)",
                    self.name,
                    exc,
                )
                return call.value
            raise

        with self._lock:
            now = self._clock()
            self._value = value
            self._has_value = True
            self._cached_at = now
            self._last_fetch_at = now
            self._inflight = None
            if self._breaker is not None:
                self._breaker.record_success()
            call.value = value
            call.done.set()
        return value

    def invalidate(self) -> None:
        """Drop the cached entry so the next fetch goes remote."""
        with self._lock:
            self._value = None
            self._has_value = False
            self._cached_at = None
            self._last_fetch_at = None

    @property
    def has_value(self) -> bool:
        return self._has_value

