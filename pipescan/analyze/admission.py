"""Admission control and progress tracking for concurrent repository scans."""

from __future__ import annotations

import asyncio
import threading
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class AdmissionLimiter:
    """Weighted admission gate built on :class:`asyncio.Condition`.

    At most ``capacity`` units of work are admitted at once. Callers block in
    :meth:`acquire` until enough capacity is free, and every successful
    ``acquire`` must be paired with a :meth:`release` of the same weight.

    Examples
    --------
    >>> limiter = AdmissionLimiter(2)
    >>> await limiter.acquire()  # doctest: +SKIP
    >>> await limiter.release()  # doctest: +SKIP

    """

    def __init__(self, capacity: int) -> None:
        """Create a gate that admits ``capacity`` units at once."""
        if capacity < 1:
            msg = f"capacity must be at least 1, got {capacity}"
            raise ValueError(msg)
        self._capacity = capacity
        self._in_use = 0
        self._condition = asyncio.Condition()

    @property
    def capacity(self) -> int:
        """Return the number of units admitted at once."""
        return self._capacity

    @property
    def in_use(self) -> int:
        """Return the number of units currently admitted."""
        return self._in_use

    def _check_weight(self, weight: int) -> None:
        if not 1 <= weight <= self._capacity:
            msg = f"weight must be between 1 and {self._capacity}, got {weight}"
            raise ValueError(msg)

    async def acquire(self, weight: int = 1) -> None:
        """Wait until ``weight`` units are free, then take them.

        Cancellation while waiting propagates :class:`asyncio.CancelledError`
        without taking any capacity.
        """
        self._check_weight(weight)
        async with self._condition:
            await self._condition.wait_for(
                lambda: self._in_use + weight <= self._capacity
            )
            self._in_use += weight

    async def release(self, weight: int = 1) -> None:
        """Return ``weight`` units and wake waiting callers."""
        self._check_weight(weight)
        async with self._condition:
            if weight > self._in_use:
                msg = f"release of {weight} exceeds {self._in_use} units in use"
                raise RuntimeError(msg)
            self._in_use -= weight
            self._condition.notify_all()


class ScanProgress:
    """Thread-safe counter of repositories finished out of a known total.

    ``on_advance`` is called with ``(done, total)`` after every advance,
    outside the lock.
    """

    def __init__(
        self, on_advance: cabc.Callable[[int, int], object] | None = None
    ) -> None:
        """Start with nothing done and no total."""
        self._on_advance = on_advance
        self._lock = threading.Lock()
        self._total = 0
        self._done = 0

    def set_total(self, total: int) -> None:
        """Record the expected number of repositories."""
        with self._lock:
            self._total = max(total, self._done)

    def advance(self, count: int = 1) -> None:
        """Mark ``count`` more repositories as finished."""
        with self._lock:
            self._done += count
            self._total = max(self._total, self._done)
            done, total = self._done, self._total
        if self._on_advance is not None:
            self._on_advance(done, total)

    def snapshot(self) -> tuple[int, int]:
        """Return ``(done, total)``."""
        with self._lock:
            return (self._done, self._total)
