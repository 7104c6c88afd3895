# insightboard/services/scheduler.py
import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class PeriodicJob:
    """
    Runs `job` once right away and then every `interval_seconds`.

    Runs never overlap: a tick that fires while the previous run is still going
    is dropped. Ticks are spaced from the start of each run, not its end.
    """

    def __init__(self, job: Callable[[], Awaitable[Any]], interval_seconds: float, name: str = "aggregation"):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.job = job
        self.interval_seconds = interval_seconds
        self.name = name
        self._lock = asyncio.Lock()
        self._ticker: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def run_once(self) -> Optional[Any]:
        """Run the job unless a run is already in progress; returns None when skipped."""
        if self._lock.locked():
            logger.warning("job_run_overlap_skipped", job=self.name)
            return None
        async with self._lock:
            return await self.job()

    def start(self) -> None:
        if self.running:
            return
        self._ticker = asyncio.create_task(self._tick(), name=f"{self.name}-ticker")
        logger.info("job_scheduled", job=self.name, interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        tasks = [t for t in (self._ticker, self._current) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = None
        self._current = None
        logger.info("job_stopped", job=self.name)

    def _report_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("job_run_failed", job=self.name, error=str(exc))

    async def _tick(self) -> None:
        while True:
            if self._current is None or self._current.done():
                self._current = asyncio.create_task(self.run_once(), name=f"{self.name}-run")
                self._current.add_done_callback(self._report_failure)
            else:
                logger.warning("job_run_overlap_skipped", job=self.name)
            await asyncio.sleep(self.interval_seconds)
