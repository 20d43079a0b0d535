"""Audit and diagnostic logging for harvest cycles."""
from .cycle_logger import CycleLogger
from .log_replay import replay_cycle_log
from .rate_limited import CircuitBreaker, RateLimitedLogger

__all__ = ["CycleLogger", "replay_cycle_log", "CircuitBreaker", "RateLimitedLogger"]
