#!/usr/bin/env python3
"""Tests for the job scheduler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from validator_ejector.job_runner import JobRunner
from validator_ejector.models import VerifiedMessageSet

MESSAGES = VerifiedMessageSet()


def make_runner(metrics, handler, interval=0.01, halt_on_error=False):
    return JobRunner(
        name="test-job",
        handler=handler,
        metrics=metrics,
        interval=interval,
        halt_on_error=halt_on_error
    )


class TestJobRunner:

    @pytest.mark.asyncio
    async def test_once(self, metrics, registry):
        handler = AsyncMock()
        runner = make_runner(metrics, handler)

        await runner.once(50000, MESSAGES)

        handler.assert_awaited_once_with(50000, MESSAGES)
        assert runner.passes_completed == 1
        count = registry.get_sample_value(
            "validator_ejector_job_duration_seconds_count",
            {"name": "test-job", "result": "success"}
        )
        assert count == 1.0

    @pytest.mark.asyncio
    async def test_once_reraises(self, metrics):
        runner = make_runner(metrics, AsyncMock(side_effect=RuntimeError("boom")))

        with pytest.raises(RuntimeError, match="boom"):
            await runner.once(50000, MESSAGES)

        assert runner.passes_failed == 1

    @pytest.mark.asyncio
    async def test_pooling_runs_until_stopped(self, metrics):
        runner = None

        async def handler(events_number, verified_messages):
            assert events_number == 900
            if runner.passes_completed == 2:
                runner.stop()

        runner = make_runner(metrics, handler)
        await asyncio.wait_for(runner.pooling(900, MESSAGES), timeout=5)

        assert runner.passes_completed == 3
        assert runner.is_running is False

    @pytest.mark.asyncio
    async def test_passes_never_overlap(self, metrics):
        active = 0
        max_active = 0
        runner = None

        async def handler(events_number, verified_messages):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            # Longer than the interval
            await asyncio.sleep(0.03)
            active -= 1
            if runner.passes_completed >= 2:
                runner.stop()

        runner = make_runner(metrics, handler, interval=0.001)
        await asyncio.wait_for(runner.pooling(900, MESSAGES), timeout=5)

        assert max_active == 1

    @pytest.mark.asyncio
    async def test_pooling_continues_after_failure(self, metrics):
        runner = None
        calls = 0

        async def handler(events_number, verified_messages):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("transient")
            runner.stop()

        runner = make_runner(metrics, handler)
        await asyncio.wait_for(runner.pooling(900, MESSAGES), timeout=5)

        assert runner.passes_failed == 1
        assert runner.passes_completed == 1

    @pytest.mark.asyncio
    async def test_halt_on_error(self, metrics):
        runner = make_runner(
            metrics, AsyncMock(side_effect=RuntimeError("fatal")), halt_on_error=True
        )

        with pytest.raises(RuntimeError, match="fatal"):
            await asyncio.wait_for(runner.pooling(900, MESSAGES), timeout=5)

        assert runner.is_running is False

    @pytest.mark.asyncio
    async def test_stop_before_first_pass(self, metrics):
        handler = AsyncMock()
        runner = make_runner(metrics, handler, interval=10)

        task = asyncio.create_task(runner.pooling(900, MESSAGES))
        await asyncio.sleep(0)
        runner.stop()
        await asyncio.wait_for(task, timeout=1)

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_during_preload_prevents_polling(self, metrics):
        window_sizes = []
        runner = None

        async def handler(events_number, verified_messages):
            window_sizes.append(events_number)
            if events_number == 50000:
                runner.stop()

        runner = make_runner(metrics, handler, interval=0.001)

        await runner.once(50000, MESSAGES)
        await asyncio.wait_for(runner.pooling(900, MESSAGES), timeout=1)

        assert window_sizes == [50000]
        assert runner.is_running is False

    def test_get_status(self, metrics):
        runner = make_runner(metrics, AsyncMock(), interval=384)
        assert runner.get_status() == {
            "name": "test-job",
            "is_running": False,
            "passes_completed": 0,
            "passes_failed": 0,
            "interval": 384,
        }
