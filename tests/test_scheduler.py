"""Tests for the daily job scheduler and the job wiring."""

import asyncio

from core.scheduler import DailyScheduler
from jobs import build_scheduler


def test_failing_job_does_not_escape():
    scheduler = DailyScheduler()

    def boom():
        raise RuntimeError("job exploded")

    scheduler.add_job("boom", boom, "03:00")
    asyncio.run(scheduler.run_once(scheduler.jobs[0]))
    assert scheduler.jobs[0].last_result is None


def test_job_result_is_kept():
    scheduler = DailyScheduler()
    scheduler.add_job("answer", lambda: {"processed": 3, "failed": 0}, "03:00")
    asyncio.run(scheduler.run_once(scheduler.jobs[0]))
    assert scheduler.jobs[0].last_result == {"processed": 3, "failed": 0}


def test_start_and_stop():
    async def _cycle():
        scheduler = DailyScheduler()
        scheduler.add_job("idle", lambda: None, "03:00")
        scheduler.start()
        assert len(scheduler._tasks) == 1
        await scheduler.stop()
        assert scheduler._tasks == []

    asyncio.run(_cycle())


def test_app_jobs_are_registered(app):
    scheduler = build_scheduler(app.state)
    assert [(j.name, j.hour, j.minute) for j in scheduler.jobs] == [
        ("reminder-dispatch", 8, 0),
        ("document-cleanup", 2, 0),
        ("token-cleanup", 2, 0),
    ]
