"""
Time accounting for challenges.

Each party owns a time budget. Only the party whose turn it is accrues debits: the time elapsed since the last
accepted move is subtracted from its budget when it moves, while the opponent's clock stays frozen. A budget
never grows and never goes below zero.
"""

import time
from abc import ABC, abstractmethod


class TimeSource(ABC):
    """A monotonically non-decreasing source of time, shared by both parties."""

    @abstractmethod
    def now(self) -> float:
        pass


class SystemTimeSource(TimeSource):
    def now(self) -> float:
        return time.monotonic()


class ManualTimeSource(TimeSource):
    """A time source that only moves when told to. Used in simulations and tests."""

    def __init__(self, start: float = 0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, delta: float) -> float:
        if delta < 0:
            raise ValueError("Time cannot move backwards")
        self._now += delta
        return self._now

    def __repr__(self):
        return f"{self.__class__.__name__}(now={self._now})"


class TimeoutClock:
    @staticmethod
    def elapsed(last: float, now: float) -> float:
        # a source stepping back never credits time
        return max(0, now - last)

    @staticmethod
    def debit(remaining: float, elapsed: float) -> float:
        return max(0, remaining - elapsed)

    @staticmethod
    def is_exhausted(remaining: float, elapsed: float) -> bool:
        return elapsed >= remaining
