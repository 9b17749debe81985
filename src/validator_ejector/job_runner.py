"""
Job scheduler.

Runs the job handler once over a large historical window, then repeatedly
over a small rolling window. Passes never overlap.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from .metrics import EjectorMetrics
from .models import VerifiedMessageSet

JobHandler = Callable[[int, VerifiedMessageSet], Awaitable[None]]


class JobRunner:
    """
    Sequential scheduler for job passes.

    """

    def __init__(
        self,
        name: str,
        handler: JobHandler,
        metrics: EjectorMetrics,
        interval: float,
        halt_on_error: bool = False
    ):
        """
        Initialize the job runner.

        Args:
            name: Job name used in logs and metrics
            handler: Coroutine running one pass for a given window size
            metrics: Metrics holder for job durations
            interval: Seconds to wait between passes
            halt_on_error: Stop looping when a pass fails instead of carrying on
        """
        self.name = name
        self.handler = handler
        self.metrics = metrics
        self.interval = interval
        self.halt_on_error = halt_on_error

        # State tracking
        self.is_running = False
        self.passes_completed = 0
        self.passes_failed = 0
        self._shutdown = asyncio.Event()

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def _run_pass(self, events_number: int, verified_messages: VerifiedMessageSet) -> None:
        started = time.perf_counter()
        result = "error"
        try:
            await self.handler(events_number, verified_messages)
            result = "success"
            self.passes_completed += 1
        except Exception:
            self.passes_failed += 1
            raise
        finally:
            self.metrics.job_duration.labels(name=self.name, result=result).observe(
                time.perf_counter() - started
            )

    async def once(self, events_number: int, verified_messages: VerifiedMessageSet) -> None:
        """
        Run a single pass and wait for it to complete.

        Errors are logged and re-raised: the caller decides whether the
        service can start without it.
        """
        self.logger.info(f"Running {self.name} once for {events_number} blocks")
        try:
            await self._run_pass(events_number, verified_messages)
        except Exception as e:
            self.logger.error(f"{self.name} pass failed: {e}", exc_info=True)
            raise

    async def _sleep(self) -> bool:
        """Wait for the next pass. Returns False if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self.interval)
            return False
        except asyncio.TimeoutError:
            return True

    async def pooling(self, events_number: int, verified_messages: VerifiedMessageSet) -> None:
        """
        Run a pass every ``interval`` seconds until stopped.

        Args:
            events_number: Size of the block window for each pass
            verified_messages: Messages verified at startup
        """
        if self.is_running:
            self.logger.warning(f"{self.name} is already polling")
            return

        # A stop requested during the preload pass still applies
        if self._shutdown.is_set():
            self.logger.info(f"{self.name} was stopped before polling started")
            return

        self.is_running = True
        self.logger.info(
            f"Starting {self.interval} seconds polling for {events_number} last blocks"
        )

        try:
            while await self._sleep():
                try:
                    await self._run_pass(events_number, verified_messages)
                except Exception as e:
                    self.logger.error(f"{self.name} pass failed: {e}", exc_info=True)
                    if self.halt_on_error:
                        raise
        except asyncio.CancelledError:
            self.logger.info(f"{self.name} polling cancelled")
            raise
        finally:
            self.is_running = False
            self.logger.info(f"{self.name} polling stopped")

    def stop(self) -> None:
        """Request the polling loop to stop before the next pass."""
        self.logger.info(f"Stopping {self.name}")
        self._shutdown.set()

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_running": self.is_running,
            "passes_completed": self.passes_completed,
            "passes_failed": self.passes_failed,
            "interval": self.interval,
        }
