"""Background expiry sweeper for the usage store.

Deletes counters whose window ended more than a grace period ago so memory
stays bounded over long uptimes. Correctness never depends on it: a check that
finds no entry starts a fresh window, which is what an expired entry yields
anyway.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.adapters.rate_limit.base import AbstractUsageStore, Dimension

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepSchedule:
    """How often to sweep one dimension and how long to keep expired entries."""

    dimension: Dimension
    interval_seconds: float
    grace_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if self.grace_seconds < 0:
            raise ValueError("grace_seconds must be >= 0")


class ExpirySweeper:
    """Runs one asyncio task per sweep schedule.

    Lifecycle: start() on application startup, stop() on shutdown. Both are
    idempotent.
    """

    def __init__(self, store: AbstractUsageStore, schedules: list[SweepSchedule]) -> None:
        self.store = store
        self.schedules = list(schedules)
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        for schedule in self.schedules:
            task = asyncio.create_task(
                self._sweep_loop(schedule),
                name=f"expiry-sweeper-{schedule.dimension.value}",
            )
            self._tasks.append(task)
        logger.info(
            "sweeper.started",
            extra={"dimensions": [s.dimension.value for s in self.schedules]},
        )

    async def stop(self) -> None:
        if not self._tasks:
            return
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("sweeper.stopped")

    def sweep_dimension(self, schedule: SweepSchedule) -> int:
        removed = self.store.sweep(schedule.dimension, schedule.grace_seconds)
        if removed:
            logger.info(
                "sweeper.swept",
                extra={"dimension": schedule.dimension.value, "removed": removed},
            )
        return removed

    def sweep_once(self) -> dict[str, int]:
        """Sweep every scheduled dimension immediately.

        Returns:
            Mapping of dimension name to entries removed.
        """
        return {
            schedule.dimension.value: self.sweep_dimension(schedule)
            for schedule in self.schedules
        }

    async def _sweep_loop(self, schedule: SweepSchedule) -> None:
        while True:
            await asyncio.sleep(schedule.interval_seconds)
            try:
                self.sweep_dimension(schedule)
            except Exception as exc:
                logger.error(
                    "sweeper.failed",
                    extra={
                        "dimension": schedule.dimension.value,
                        "error_type": type(exc).__name__,
                        "error_msg": str(exc),
                    },
                )
