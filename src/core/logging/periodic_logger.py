"""Periodic statistics logging utility for workers."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from core.logging.utilities import format_cycle_output

logger = logging.getLogger(__name__)

_COUNTERS = ("forwarded", "retried", "dead_lettered")


class PeriodicStatsLogger:
    """
    Manages periodic statistics logging for workers with delta tracking.

    Workers provide a callback returning extra fields with cumulative counts
    under ``records_forwarded``, ``records_retried`` and ``records_dead_lettered``.
    """

    def __init__(
        self,
        interval_seconds: int,
        get_stats: Callable[[int], dict[str, Any]],
        stage: str,
        worker_id: str,
    ):
        """
        Args:
            interval_seconds: Logging interval in seconds
            get_stats: Callback that takes cycle_count and returns extra fields
            stage: Stage name for logging context
            worker_id: Worker identifier
        """
        self.interval_seconds = interval_seconds
        self.get_stats = get_stats
        self.stage = stage
        self.worker_id = worker_id
        self._task: asyncio.Task | None = None
        self._cycle_count = 0
        self._previous_stats: dict[str, int] = {}

    def start(self) -> None:
        """Start the periodic logging task."""
        if self._task is not None:
            logger.warning("Periodic logger already running")
            return

        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the periodic logging task."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @staticmethod
    def _counts(extra: dict[str, Any]) -> dict[str, int]:
        return {name: extra.get(f"records_{name}", 0) for name in _COUNTERS}

    async def _run(self) -> None:
        """Run the periodic logging loop with delta tracking."""
        initial_extra = self.get_stats(0)
        self._previous_stats = self._counts(initial_extra)

        initial_msg = format_cycle_output(0, **self._previous_stats)
        logger.info(
            f"{initial_msg} [cycle output every {self.interval_seconds}s]",
            extra={
                "worker_id": self.worker_id,
                "stage": self.stage,
                "cycle": 0,
                **initial_extra,
            },
        )

        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                self._cycle_count += 1

                extra = self.get_stats(self._cycle_count)
                current = self._counts(extra)
                deltas = {key: current[key] - self._previous_stats.get(key, 0) for key in current}

                msg = format_cycle_output(
                    self._cycle_count,
                    **current,
                    since_last=deltas,
                    interval_seconds=self.interval_seconds,
                )
                self._previous_stats = current

                delta_total = sum(deltas.values())
                rate = delta_total / self.interval_seconds if self.interval_seconds > 0 else 0

                logger.info(
                    msg,
                    extra={
                        "worker_id": self.worker_id,
                        "stage": self.stage,
                        "cycle": self._cycle_count,
                        "cycle_interval_seconds": self.interval_seconds,
                        "delta_total": delta_total,
                        "rate_msg_per_sec": round(rate, 1),
                        **extra,
                    },
                )

        except asyncio.CancelledError:
            logger.debug("Periodic stats logger task cancelled")
            raise
