# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Daily background jobs.

Each job runs once a day at a fixed UTC wall-clock time, as its own asyncio
task inside the web process.  Job bodies are synchronous (database + SMTP)
and run in a worker thread so the event loop keeps serving requests.  A
failing run is logged; the job is scheduled again for the next day.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from core.config import parse_job_time
from core.logger import get_logger
from database import utcnow

job_log = get_logger("jobs")


@dataclass
class DailyJob:
    name: str
    func: Callable[[], object]
    hour: int
    minute: int
    last_result: Optional[object] = None


def seconds_until(hour: int, minute: int, now: datetime) -> float:
    """Seconds from *now* to the next HH:MM (UTC); a time already passed today means tomorrow."""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class DailyScheduler:
    def __init__(self, clock: Callable = utcnow):
        self.clock = clock
        self.jobs: list[DailyJob] = []
        self._tasks: list[asyncio.Task] = []

    def add_job(self, name: str, func: Callable[[], object], at: str) -> None:
        hour, minute = parse_job_time(at)
        self.jobs.append(DailyJob(name=name, func=func, hour=hour, minute=minute))
        job_log.info("Scheduled job '%s' daily at %02d:%02d UTC", name, hour, minute)

    async def run_once(self, job: DailyJob) -> None:
        job_log.info("Running job: %s", job.name)
        try:
            job.last_result = await asyncio.to_thread(job.func)
            job_log.info("Job completed: %s -> %s", job.name, job.last_result)
        except Exception:
            job_log.exception("Job failed: %s", job.name)

    async def _loop(self, job: DailyJob) -> None:
        while True:
            await asyncio.sleep(seconds_until(job.hour, job.minute, self.clock()))
            await self.run_once(job)

    def start(self) -> None:
        for job in self.jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"job:{job.name}"))
        job_log.info("Background scheduler started with %d job(s)", len(self.jobs))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        job_log.info("Scheduler stopped")
