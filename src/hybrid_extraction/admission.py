"""
Admission Control
=================

Bounded slot pools that gate work before it starts.

Two independent pools are used by the service:
- request pool: concurrent extraction, preview and image requests
- OCR pool: concurrent OCR provider calls

Usage:
    admission = AdmissionController(request_capacity=15, ocr_capacity=3)

    with admission.try_acquire_request_slot():
        with admission.try_acquire_ocr_slot(deadline=deadline):
            ...

A ``Lease`` is released exactly once, whichever way the ``with`` block
exits.
"""

import logging
import threading
import time

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import CapacityError, DeadlineExceededError

logger = logging.getLogger(__name__)


class Lease:
    """An acquired slot in a ResourcePool."""

    def __init__(self, pool: "ResourcePool"):
        self.pool = pool
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """
        Return the slot to its pool.

        Returns:
            True if this call released the slot, False if already released
        """
        with self._lock:
            if self._released:
                return False
            self._released = True
        self.pool._release_slot()
        return True

    def __enter__(self) -> "Lease":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"Lease(pool='{self.pool.name}', {state})"


class ResourcePool:
    """
    Counting pool of ``capacity`` slots.

    Attributes:
        name: Pool name, used in logs
        capacity: Maximum number of concurrent leases
        kind: Error code reported when the pool is exhausted
    """

    WAIT_SLICE = 0.05

    def __init__(self, name: str, capacity: int, kind: str = "capacity"):
        if capacity <= 0:
            raise ValueError(f"pool capacity must be positive, got {capacity}")

        self.name = name
        self.capacity = capacity
        self.kind = kind
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._in_use = 0
        self._counter_lock = threading.Lock()

    @property
    def in_use(self) -> int:
        with self._counter_lock:
            return self._in_use

    @property
    def available(self) -> int:
        return self.capacity - self.in_use

    def acquire(
        self,
        timeout: float | None = 0.0,
        deadline: Deadline | None = None,
    ) -> Lease:
        """
        Acquire a slot.

        Args:
            timeout: Seconds to wait for a free slot; 0 fails fast,
                None waits indefinitely
            deadline: Optional request deadline; the wait never outlasts it
                and stops as soon as it is cancelled

        Returns:
            A Lease owning the slot

        Raises:
            CapacityError: If no slot became free in time
            DeadlineExceededError: If the deadline was cancelled
        """
        if deadline is not None:
            self._check_cancelled(deadline)
            remaining = deadline.remaining()
            if remaining is not None:
                timeout = remaining if timeout is None else min(timeout, remaining)

        if timeout is not None and timeout <= 0:
            acquired = self._semaphore.acquire(blocking=False)
        elif deadline is None:
            acquired = self._semaphore.acquire(timeout=timeout)
        else:
            acquired = self._wait(timeout, deadline)

        if not acquired:
            logger.warning("%s pool at capacity (%d slots)", self.name, self.capacity)
            raise CapacityError(f"{self.name} at capacity", kind=self.kind)

        with self._counter_lock:
            self._in_use += 1
        return Lease(self)

    def _wait(self, timeout: float | None, deadline: Deadline) -> bool:
        """Wait in short slices so a cancelled deadline is noticed promptly."""
        give_up = None if timeout is None else time.monotonic() + timeout
        while True:
            self._check_cancelled(deadline)
            wait = self.WAIT_SLICE
            if give_up is not None:
                left = give_up - time.monotonic()
                if left <= 0:
                    return False
                wait = min(wait, left)
            if self._semaphore.acquire(timeout=wait):
                return True

    def _check_cancelled(self, deadline: Deadline) -> None:
        if deadline.cancelled:
            raise DeadlineExceededError(f"{self.name} slot wait cancelled")

    def _release_slot(self) -> None:
        with self._counter_lock:
            self._in_use -= 1
        self._semaphore.release()


class AdmissionController:
    """Request and OCR slot pools, constructed per service instance."""

    def __init__(
        self,
        request_capacity: int = 15,
        ocr_capacity: int = 3,
        request_wait: float = 0.0,
        ocr_wait: float | None = None,
    ):
        """
        Initialize the admission controller.

        Args:
            request_capacity: Maximum concurrent requests
            ocr_capacity: Maximum concurrent OCR calls
            request_wait: Default wait for a request slot in seconds
            ocr_wait: Default wait for an OCR slot (None waits indefinitely)
        """
        self.requests = ResourcePool("Service", request_capacity, kind="capacity")
        self.ocr = ResourcePool("OCR", ocr_capacity, kind="ocr_capacity")
        self.request_wait = request_wait
        self.ocr_wait = ocr_wait

    def try_acquire_request_slot(
        self,
        timeout: float | None = None,
        deadline: Deadline | None = None,
    ) -> Lease:
        """Acquire a request slot or raise CapacityError (kind "capacity")."""
        return self.requests.acquire(self.request_wait if timeout is None else timeout, deadline)

    def try_acquire_ocr_slot(
        self,
        timeout: float | None = None,
        deadline: Deadline | None = None,
    ) -> Lease:
        """
        Acquire an OCR slot or raise CapacityError (kind "ocr_capacity").

        With the default wait and a ``deadline``, waits for a free slot for
        at most the deadline's remaining time.
        """
        return self.ocr.acquire(self.ocr_wait if timeout is None else timeout, deadline)

    def release(self, lease: Lease) -> bool:
        """Release a lease. Releasing twice is a no-op."""
        return lease.release()

    def snapshot(self) -> dict[str, int]:
        """Pool usage for health and metrics endpoints."""
        return {
            "requestCapacity": self.requests.capacity,
            "requestsInUse": self.requests.in_use,
            "ocrCapacity": self.ocr.capacity,
            "ocrInUse": self.ocr.in_use,
        }
