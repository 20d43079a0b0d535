"""Resilient cache, rate-limited logger and circuit breaker tests."""

import logging
import threading

from harvest_cycle.core.errors import RateLimitError, RpcError, is_rate_limit_error
from harvest_cycle.core.holder_inspector import HolderInspector
from harvest_cycle.core.resilient_cache import ResilientCache
from harvest_cycle.logging.rate_limited import CircuitBreaker, RateLimitedLogger


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class Loader:
    """Returns 1, 2, 3... or raises whatever is queued in ``fail``."""

    def __init__(self):
        self.calls = 0
        self.fail = None

    def __call__(self):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return self.calls


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_ttl_and_cooldown():
    print("=== TTL / Cooldown ===")
    clock = FakeClock()
    loader = Loader()
    cache = ResilientCache(loader, ttl=10, cooldown=0, clock=clock)
    assert cache.fetch() == 1
    clock.now += 5
    assert cache.fetch() == 1
    assert loader.calls == 1
    print("  fresh entry served without remote call: OK")

    clock.now += 6
    assert cache.fetch() == 2
    assert cache.remote_calls == 2
    print("  expired entry reloaded: OK")

    clock = FakeClock()
    loader = Loader()
    cache = ResilientCache(loader, ttl=1, cooldown=30, clock=clock)
    cache.fetch()
    clock.now += 5
    assert cache.fetch() == 1
    assert loader.calls == 1
    clock.now += 30
    assert cache.fetch() == 2
    print("  stale entry served during cooldown: OK")

    cache.invalidate()
    assert not cache.has_value
    assert cache.fetch() == 3
    print("  invalidate forces reload: OK")


def test_cooldown_after_failed_refresh():
    print("=== Cooldown Shorter Than TTL ===")
    clock = FakeClock()
    loader = Loader()
    cache = ResilientCache(loader, ttl=60, cooldown=30, clock=clock)
    assert cache.fetch() == 1
    clock.now += 61
    loader.fail = RpcError("node exploded", code=-32000)
    try:
        cache.fetch()
        assert False, "Should have raised"
    except RpcError:
        pass
    assert cache.remote_calls == 2
    print("  expired entry: refresh attempted, error propagates: OK")

    clock.now += 10
    assert cache.fetch() == 1
    assert cache.remote_calls == 2
    print("  within cooldown of the failed call: stale entry, no remote call: OK")

    loader.fail = None
    clock.now += 25
    assert cache.fetch() == 3
    assert cache.remote_calls == 3
    print("  after cooldown: reloaded: OK")

    inspector = HolderInspector(None, "mint", holder_ttl=10, mint_ttl=10, cooldown=30)
    assert inspector._accounts_cache.cooldown == 30
    assert inspector._mint_cache.cooldown == 30
    print("  holder caches keep a cooldown longer than their TTL: OK")


def test_rate_limit_fallback():
    print("=== Rate Limit Fallback ===")
    clock = FakeClock()
    loader = Loader()
    cache = ResilientCache(loader, ttl=1, cooldown=0, clock=clock)
    assert cache.fetch() == 1
    clock.now += 2
    loader.fail = RateLimitError("HTTP 429", code=429)
    assert cache.fetch() == 1
    print("  rate limit with entry returns stale: OK")

    loader.fail = RpcError("node exploded", code=-32000)
    try:
        cache.fetch()
        assert False, "Should have raised"
    except RpcError as exc:
        assert not isinstance(exc, RateLimitError)
        print("  non rate-limit error propagates: OK")

    failing = Loader()
    failing.fail = RateLimitError("Too many requests")
    empty = ResilientCache(failing, ttl=1, cooldown=0, clock=clock)
    try:
        empty.fetch()
        assert False, "Should have raised"
    except RateLimitError:
        print("  rate limit without entry propagates: OK")

    assert is_rate_limit_error(RpcError("Too Many Requests for url"))
    assert is_rate_limit_error(RpcError("429 Client Error"))
    assert not is_rate_limit_error(RpcError("blockhash not found"))
    print("  rate-limit classifier: OK")


def test_circuit_breaker():
    print("=== Circuit Breaker ===")
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=2, reset_seconds=300, clock=clock)
    loader = Loader()
    cache = ResilientCache(loader, ttl=1, cooldown=0, clock=clock, breaker=breaker)
    cache.fetch()

    loader.fail = RateLimitError("429")
    clock.now += 2
    cache.fetch()
    assert not breaker.is_open
    clock.now += 2
    cache.fetch()
    assert breaker.is_open
    print("  opens after threshold rate limits: OK")

    calls = loader.calls
    clock.now += 2
    assert cache.fetch() == 1
    assert loader.calls == calls, "open breaker skips the remote call"
    print("  open breaker serves stale without remote call: OK")

    loader.fail = None
    clock.now += 300
    assert not breaker.is_open
    assert cache.fetch() == calls + 1
    print("  closes after reset period: OK")


def test_inflight_coalescing():
    print("=== In-flight Coalescing ===")
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow_loader():
        calls.append(1)
        started.set()
        release.wait(5)
        return "value"

    cache = ResilientCache(slow_loader, ttl=60, cooldown=30)
    results = []
    t1 = threading.Thread(target=lambda: results.append(cache.fetch()))
    t1.start()
    assert started.wait(5)
    t2 = threading.Thread(target=lambda: results.append(cache.fetch()))
    t2.start()
    release.set()
    t1.join(5)
    t2.join(5)
    assert results == ["value", "value"]
    assert len(calls) == 1
    print("  concurrent fetches share one remote call: OK")


def test_rate_limited_logger():
    print("=== Rate-Limited Logger ===")
    handler = ListHandler()
    log = logging.getLogger("test_rate_limited_logger")
    log.addHandler(handler)
    log.propagate = False
    clock = FakeClock()
    throttled = RateLimitedLogger(log, max_per_window=3, window=60, clock=clock)

    emitted = [throttled.warning("rpc429", "rate limited %d", i) for i in range(5)]
    assert emitted == [True, True, True, False, False]
    assert len(handler.records) == 4
    assert "Suppressing" in handler.records[3].getMessage()
    print("  3 per window plus one suppression notice: OK")

    assert throttled.warning("other", "different key")
    clock.now += 61
    assert throttled.warning("rpc429", "rate limited again")
    print("  keys independent, window resets: OK")
    log.removeHandler(handler)


if __name__ == "__main__":
    test_ttl_and_cooldown()
    test_cooldown_after_failed_refresh()
    test_rate_limit_fallback()
    test_circuit_breaker()
    test_inflight_coalescing()
    test_rate_limited_logger()
    print("\n*** ALL RESILIENT CACHE TESTS PASSED ***")
