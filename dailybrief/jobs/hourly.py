"""
Hourly Daily Brief job.

Run with: python -m dailybrief.jobs.hourly

This job:
1. Finds recipients whose local time is the target hour (7 AM)
2. Assembles each brief (stories, weather, ads)
3. Sends through Resend and records the send
"""

import asyncio
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dailybrief.config import AppConfig, Settings, get_config, get_settings
from dailybrief.core.database import create_engine, create_session_factory
from dailybrief.core.logging import get_logger, setup_logging
from dailybrief.services.digest_dispatch import send_daily_briefs
from dailybrief.services.digest_pipeline import build_pipeline

logger = get_logger(__name__)


async def run_daily_brief(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    config: AppConfig,
    target_hour: int | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    """One dispatch run with its own session and HTTP client."""
    async with httpx.AsyncClient(timeout=settings.forecast_timeout_seconds) as http_client:
        async with session_factory() as db:
            pipeline = build_pipeline(db, settings, config, http_client=http_client)
            return await send_daily_briefs(pipeline, target_hour=target_hour, dry_run=dry_run)


async def main(target_hour: int | None = None, dry_run: bool = False) -> dict[str, Any]:
    """Run the hourly Daily Brief job."""
    setup_logging()
    settings = get_settings()
    config = get_config()
    logger.bind(dry_run=dry_run).info("hourly_job_started")

    engine = create_engine(settings)
    try:
        summary = await run_daily_brief(
            create_session_factory(engine),
            settings,
            config,
            target_hour=target_hour,
            dry_run=dry_run,
        )
        logger.bind(
            sent=summary["emails_sent"],
            failed=summary["emails_failed"],
            skipped=summary["emails_skipped"],
        ).info("hourly_job_completed")
        return summary
    except Exception as e:
        logger.bind(error=str(e)).error("hourly_job_failed")
        raise
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
