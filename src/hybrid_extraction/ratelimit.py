"""
Per-Client Rate Limiting
========================

Token bucket per client key, created on first sight and kept in a
lock-protected registry.

A background thread discards the whole registry on a fixed interval. This
bounds memory without per-key expiry; it also gives clients that are
currently active a fresh bucket.
"""

import logging
import threading
import time
from typing import Callable, Mapping

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Token bucket with burst support.

    One token is added every ``every`` seconds, up to ``burst`` tokens.
    """

    def __init__(
        self,
        every: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize token bucket.

        Args:
            every: Seconds per refilled token
            burst: Maximum number of tokens
            clock: Monotonic time source
        """
        self.every = every
        self.burst = burst
        self._clock = clock
        self.tokens = float(burst)
        self.last_refill = clock()
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """
        Try to consume one token.

        Returns:
            True if a token was available, False otherwise
        """
        with self._lock:
            now = self._clock()
            elapsed = now - self.last_refill
            self.tokens = min(float(self.burst), self.tokens + elapsed / self.every)
            self.last_refill = now

            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return True
            return False


class RateLimiter:
    """Registry of per-client token buckets."""

    def __init__(
        self,
        every: float = 0.6,
        burst: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the rate limiter.

        Args:
            every: Seconds per refilled token (0.6s is ~100/min)
            burst: Bucket size per client
            clock: Monotonic time source shared by all buckets
        """
        self.every = every if every > 0 else 0.6
        self.burst = burst if burst > 0 else 20
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._cleanup_thread: threading.Thread | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _bucket(self, client_key: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(client_key)
            if bucket is None:
                bucket = TokenBucket(self.every, self.burst, clock=self._clock)
                self._buckets[client_key] = bucket
            return bucket

    def allow(self, client_key: str) -> bool:
        """Consume one token for ``client_key``."""
        return self._bucket(client_key).allow()

    def reset(self) -> int:
        """
        Discard every bucket.

        Returns:
            Number of buckets dropped
        """
        with self._lock:
            dropped = len(self._buckets)
            self._buckets = {}
        return dropped

    def start_cleanup(
        self,
        interval: float = 300.0,
        on_tick: Callable[[], None] | None = None,
    ) -> None:
        """
        Start the background reset thread.

        Args:
            interval: Seconds between resets
            on_tick: Called before each reset (stats logging)
        """
        if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
            return

        self._stop.clear()

        def _loop() -> None:
            while not self._stop.wait(interval):
                if on_tick is not None:
                    on_tick()
                dropped = self.reset()
                logger.debug("Rate limiter registry cleared (%d clients)", dropped)

        self._cleanup_thread = threading.Thread(
            target=_loop, name="ratelimit-cleanup", daemon=True
        )
        self._cleanup_thread.start()

    def stop_cleanup(self, timeout: float | None = 1.0) -> None:
        """Stop the background reset thread."""
        self._stop.set()
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(timeout)
            self._cleanup_thread = None


def client_key(headers: Mapping[str, str], remote_addr: str | None) -> str:
    """
    Derive the rate-limit key for a request.

    Uses the first X-Forwarded-For entry, then X-Real-IP, then the
    connection address.
    """
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded.strip():
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    return remote_addr or "unknown"
