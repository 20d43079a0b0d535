"""Rate-limited diagnostics and rate-limit circuit breaker.

Repeated identical warnings (typically 429s from a public RPC) are
emitted at most LOG_RATE_LIMIT_MAX times per window, followed by a
single suppression notice.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from ..config.settings import (
    BREAKER_FAILURE_THRESHOLD,
    BREAKER_RESET_SECONDS,
    LOG_RATE_LIMIT_MAX,
    LOG_RATE_LIMIT_WINDOW,
)


class RateLimitedLogger:
    """Wraps a logger and throttles repeated messages by key."""

    def __init__(
        self,
        logger: logging.Logger,
        max_per_window: int = LOG_RATE_LIMIT_MAX,
        window: float = LOG_RATE_LIMIT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = logger
        self.max_per_window = max_per_window
        self.window = window
        self._clock = clock
        self._window_start: Dict[str, float] = {}
        self._count: Dict[str, int] = {}

    def log(self, level: int, key: str, msg: str, *args) -> bool:
        """Emit ``msg`` unless ``key`` has exhausted its window budget.

        Returns:
            True if the message was emitted.
        """
        now = self._clock()
        start = self._window_start.get(key)
        if start is None or now - start >= self.window:
            self._window_start[key] = now
            self._count[key] = 0

        self._count[key] += 1
        count = self._count[key]
        if count <= self.max_per_window:
            self.logger.log(level, msg, *args)
            return True
        if count == self.max_per_window + 1:
            self.logger.log(
                level,
                "Suppressing further '%s' messages for %.0fs",
                key,
                self.window - (now - self._window_start[key]),
            )
        return False

    def warning(self, key: str, msg: str, *args) -> bool:
        return self.log(logging.WARNING, key, msg, *args)

    def error(self, key: str, msg: str, *args) -> bool:
        return self.log(logging.ERROR, key, msg, *args)


class CircuitBreaker:
    """Opens after repeated rate-limit failures, closes after a cool-off."""

    def __init__(
        self,
        failure_threshold: int = BREAKER_FAILURE_THRESHOLD,
        reset_seconds: float = BREAKER_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._failures: List[float] = []
        self._opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        if self._opened_at is None:
            return False
        if self._clock() - self._opened_at >= self.reset_seconds:
            self.reset()
            return False
        return True

    def record_rate_limit(self) -> None:
        now = self._clock()
        self._failures = [t for t in self._failures if now - t < self.reset_seconds]
        self._failures.append(now)
        if len(self._failures) >= self.failure_threshold and self._opened_at is None:
            self._opened_at = now

    def record_success(self) -> None:
        self._failures.clear()

    def reset(self) -> None:
        self._failures.clear()
        self._opened_at = None
