"""Unit tests for admission control and progress tracking."""

from __future__ import annotations

import asyncio

import pytest

from pipescan.analyze import AdmissionLimiter, ScanProgress


class TestAdmissionLimiter:
    """Tests for AdmissionLimiter."""

    @pytest.mark.parametrize("capacity", [0, -1])
    def test_rejects_invalid_capacity(self, capacity: int) -> None:
        """Capacity must admit at least one unit."""
        with pytest.raises(ValueError, match="capacity must be at least 1"):
            AdmissionLimiter(capacity)

    @pytest.mark.asyncio
    async def test_never_exceeds_capacity(self) -> None:
        """Concurrent holders never exceed the capacity."""
        limiter = AdmissionLimiter(3)
        active = 0
        peak = 0

        async def work() -> None:
            nonlocal active, peak
            await limiter.acquire()
            try:
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.001)
            finally:
                active -= 1
                await limiter.release()

        await asyncio.gather(*(work() for _ in range(20)))

        assert peak == 3
        assert limiter.in_use == 0

    @pytest.mark.asyncio
    async def test_waiter_is_admitted_after_release(self) -> None:
        """A blocked acquire proceeds once capacity frees up."""
        limiter = AdmissionLimiter(1)
        await limiter.acquire()
        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0)

        assert not waiter.done(), "Expected the second acquire to wait."
        await limiter.release()
        await asyncio.wait_for(waiter, timeout=1)
        assert limiter.in_use == 1

    @pytest.mark.asyncio
    async def test_cancelled_waiter_takes_nothing(self) -> None:
        """Cancelling a waiting acquire leaves the count untouched."""
        limiter = AdmissionLimiter(1)
        await limiter.acquire()
        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        assert limiter.in_use == 1

    @pytest.mark.asyncio
    async def test_weighted_acquire(self) -> None:
        """Weights consume several units at once."""
        limiter = AdmissionLimiter(4)

        await limiter.acquire(3)
        assert limiter.in_use == 3
        await limiter.release(3)
        assert limiter.in_use == 0

    @pytest.mark.asyncio
    async def test_invalid_weights(self) -> None:
        """Weights outside 1..capacity are rejected."""
        limiter = AdmissionLimiter(2)

        with pytest.raises(ValueError, match="weight must be between"):
            await limiter.acquire(3)
        with pytest.raises(ValueError, match="weight must be between"):
            await limiter.release(0)

    @pytest.mark.asyncio
    async def test_over_release(self) -> None:
        """Releasing more than was acquired is a programming error."""
        limiter = AdmissionLimiter(2)

        with pytest.raises(RuntimeError, match="exceeds"):
            await limiter.release()


class TestScanProgress:
    """Tests for ScanProgress."""

    def test_counts_done_against_total(self) -> None:
        """advance increments the done count."""
        progress = ScanProgress()
        progress.set_total(3)
        progress.advance()
        progress.advance()

        assert progress.snapshot() == (2, 3)

    def test_total_never_drops_below_done(self) -> None:
        """Finishing more than announced grows the total."""
        progress = ScanProgress()
        progress.advance(4)
        progress.set_total(2)

        assert progress.snapshot() == (4, 4)

    def test_on_advance_reports_each_step(self) -> None:
        """The callback sees every advance with the current totals."""
        seen: list[tuple[int, int]] = []
        progress = ScanProgress(lambda done, total: seen.append((done, total)))
        progress.set_total(3)

        progress.advance()
        progress.advance(2)

        assert seen == [(1, 3), (3, 3)]
