"""Cycle scheduling."""
from .cycle_runner import CycleRunner

__all__ = ["CycleRunner"]
