"""
APScheduler integration.

Runs the Daily Brief dispatch in-process at the top of every hour. Each
run is recorded as a JobRun row with its summary.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dailybrief.config import AppConfig, Settings
from dailybrief.core.database import create_engine, create_session_factory
from dailybrief.core.datetime_utils import to_naive_utc, utc_now
from dailybrief.core.logging import get_logger
from dailybrief.jobs.hourly import run_daily_brief
from dailybrief.models.job_run import JobRun

logger = get_logger(__name__)

DAILY_BRIEF_JOB_ID = "daily_brief"


async def record_job_run(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: str,
    started_at: datetime,
    outcome: str,
    error: str | None = None,
    summary: dict[str, Any] | None = None,
) -> None:
    """Record job execution result to database."""
    async with session_factory() as db:
        db.add(
            JobRun(
                job_id=job_id,
                scheduled_at=to_naive_utc(started_at.replace(minute=0, second=0, microsecond=0)),
                started_at=to_naive_utc(started_at),
                finished_at=to_naive_utc(utc_now()),
                outcome=outcome,
                error=error,
                summary_json=summary,
            )
        )
        await db.commit()


async def daily_brief_job(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    config: AppConfig,
) -> None:
    """Hourly Daily Brief dispatch."""
    started_at = utc_now()
    logger.info("scheduled_daily_brief_started")
    try:
        summary = await run_daily_brief(session_factory, settings, config)
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_daily_brief_failed")
        await _safe_record(session_factory, started_at, "error", error=str(e))
        raise  # Re-raise so APScheduler records the failure

    if summary["emails_sent"] > 0 or summary["emails_failed"] > 0:
        logger.bind(
            sent=summary["emails_sent"],
            failed=summary["emails_failed"],
        ).info("scheduled_daily_brief_completed")
    else:
        logger.debug("scheduled_daily_brief_nothing_to_send")
    await _safe_record(session_factory, started_at, "success", summary=summary)


async def _safe_record(
    session_factory: async_sessionmaker[AsyncSession],
    started_at: datetime,
    outcome: str,
    **kwargs: Any,
) -> None:
    try:
        await record_job_run(session_factory, DAILY_BRIEF_JOB_ID, started_at, outcome, **kwargs)
    except Exception as e:
        logger.bind(error=str(e)).error("failed_to_record_job_result")


@asynccontextmanager
async def running_scheduler(
    settings: Settings,
    config: AppConfig,
) -> AsyncIterator[AsyncScheduler | None]:
    """Run the hourly schedule in the background for the life of the block.

    Yields None when the scheduler is disabled. The engine and session
    factory belong to this block and are disposed on exit.
    """
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        yield None
        return

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    try:
        # Schedules live in memory; the cron trigger re-creates them on every start
        async with AsyncScheduler(data_store=MemoryDataStore()) as scheduler:
            await scheduler.add_schedule(
                daily_brief_job,
                CronTrigger(minute=0),
                id=DAILY_BRIEF_JOB_ID,
                args=[session_factory, settings, config],
                conflict_policy=ConflictPolicy.replace,
            )
            await scheduler.start_in_background()
            logger.bind(jobs=[DAILY_BRIEF_JOB_ID]).info("scheduler_started")
            yield scheduler
        logger.info("scheduler_stopped")
    finally:
        await engine.dispose()


async def get_job_schedules(scheduler: AsyncScheduler) -> list[dict[str, Any]]:
    """Get all registered job schedules."""
    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
