"""
Tests for the in-process renewal scheduler.
"""

import asyncio

import pytest

from dibnow.billing.renewals.scheduler import RenewalScheduler

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
class TestRenewalScheduler:
    async def test_runs_immediately_on_start(self):
        ran = asyncio.Event()

        async def cycle() -> None:
            ran.set()

        scheduler = RenewalScheduler(cycle, interval_seconds=3600)
        scheduler.start()
        try:
            await asyncio.wait_for(ran.wait(), timeout=1)
            assert scheduler.running
        finally:
            await scheduler.stop()

        assert not scheduler.running
        assert scheduler.cycles_run == 1

    async def test_repeats_every_interval(self):
        calls = 0

        async def cycle() -> None:
            nonlocal calls
            calls += 1

        scheduler = RenewalScheduler(cycle, interval_seconds=0.01)
        scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert calls >= 3

    async def test_failing_cycle_keeps_loop_alive(self):
        calls = 0

        async def cycle() -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("database unavailable")

        scheduler = RenewalScheduler(cycle, interval_seconds=0.01)
        scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.running
        await scheduler.stop()

        assert calls >= 2
        assert scheduler.cycles_run == calls

    async def test_start_is_idempotent_and_stop_without_start(self):
        async def cycle() -> None:
            return None

        scheduler = RenewalScheduler(cycle, interval_seconds=3600)
        await scheduler.stop()

        scheduler.start()
        task = scheduler._task
        scheduler.start()
        assert scheduler._task is task
        await scheduler.stop()

    async def test_run_once_counts_cycles(self):
        async def cycle() -> None:
            raise ValueError("boom")

        scheduler = RenewalScheduler(cycle, interval_seconds=60)
        await scheduler.run_once()
        await scheduler.run_once()
        assert scheduler.cycles_run == 2
