"""
Request Deadlines
=================

A per-request time budget shared by every blocking step of one request:
slot acquisition, page extraction and the OCR call.
"""

import threading
import time
from typing import Callable

from hybrid_extraction.errors import DeadlineExceededError


class Deadline:
    """
    Remaining-time tracker with explicit cancellation.

    ``Deadline(None)`` never expires on its own but can still be cancelled.
    """

    def __init__(
        self,
        timeout: float | None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout
        self._cancelled = threading.Event()

    def remaining(self) -> float | None:
        """Seconds left, ``None`` when unbounded, never negative."""
        if self._cancelled.is_set():
            return 0.0
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self, step: str = "request") -> None:
        """Raise DeadlineExceededError if the budget is used up."""
        if self._cancelled.is_set():
            raise DeadlineExceededError(f"{step} cancelled")
        if self.expired:
            raise DeadlineExceededError(f"{step} timed out")

    def timeout_for(self, cap: float | None = None) -> float | None:
        """
        Timeout to hand to a blocking call.

        Args:
            cap: Upper bound for this single call (e.g. a per-page limit)

        Returns:
            The smaller of the remaining time and ``cap``
        """
        remaining = self.remaining()
        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(remaining, cap)
