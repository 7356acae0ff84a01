"""Hourly Daily Brief dispatch.

Runs every hour and sends the brief to recipients whose local time is the
target hour. Each recipient is assembled, sent and committed on its own,
so one failure never rolls back anyone else's send record.
"""

import asyncio
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.core.logging import get_logger
from dailybrief.models.neighborhood import Neighborhood
from dailybrief.models.recipient import NewsletterSubscriber, Profile
from dailybrief.models.send_log import SendTrigger
from dailybrief.schemas.digest import DigestContent, Recipient
from dailybrief.services.digest_pipeline import DigestPipeline
from dailybrief.services.instant_resend import is_weekly_edition_day
from dailybrief.services.recipients import (
    load_neighborhood_cities,
    profile_to_recipient,
    resolve_recipients,
    subscriber_to_recipient,
)

logger = get_logger(__name__)

MAX_REPORTED_ERRORS = 10
TEST_FALLBACK_NEIGHBORHOODS = 3


def _empty_summary(dry_run: bool) -> dict[str, Any]:
    return {
        "recipients_found": 0,
        "emails_sent": 0,
        "emails_failed": 0,
        "emails_skipped": 0,
        "errors": [],
        "dry_run": dry_run,
    }


async def send_daily_briefs(
    pipeline: DigestPipeline,
    target_hour: int | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Send the Daily Brief to everyone at their target local hour.

    This function should be called hourly by the scheduler. Recipients past
    the per-run cap are counted as skipped and picked up by the next run
    (they still have no send record for today).

    Args:
        pipeline: Components bound to one database session
        target_hour: Local hour to deliver at, defaults to config
        dry_run: Assemble without sending or recording
        now: Reference time, defaults to the current time

    Returns:
        Summary dict with recipients_found, emails_sent, emails_failed,
        emails_skipped, errors (first 10) and dry_run
    """
    db = pipeline.db
    digest_config = pipeline.config.digest
    hour = digest_config.target_hour if target_hour is None else target_hour
    summary = _empty_summary(dry_run)

    if is_weekly_edition_day(digest_config.weekly_edition_day, now):
        logger.info("daily_brief_skipped_weekly_edition")
        summary["skipped_reason"] = "weekly_edition"
        return summary

    recipients = await resolve_recipients(
        db, target_hour=hour, now=now, assign_referral_codes=not dry_run
    )
    await db.commit()
    summary["recipients_found"] = len(recipients)
    if not recipients:
        logger.bind(target_hour=hour).debug("no_recipients_at_target_hour")
        return summary

    batch = recipients[: digest_config.max_emails_per_run]
    summary["emails_skipped"] = len(recipients) - len(batch)
    errors: list[str] = []
    delay = digest_config.delay_between_sends_ms / 1000

    for recipient in batch:
        try:
            content = await pipeline.assembler.assemble(recipient, now=now)
            if dry_run:
                summary["emails_sent"] += 1
                await db.rollback()
                continue

            sent = await pipeline.sender.send(content, trigger=SendTrigger.SCHEDULED, now=now)
            await db.commit()
            if sent:
                summary["emails_sent"] += 1
            else:
                summary["emails_failed"] += 1
                errors.append(f"Failed: {recipient.email}")
        except Exception as e:
            await db.rollback()
            summary["emails_failed"] += 1
            errors.append(f"Error for {recipient.email}: {e}")
            logger.bind(
                recipient_id=recipient.id,
                email=recipient.email,
                error=str(e),
            ).error("daily_brief_recipient_error")
            continue

        if delay > 0:
            await asyncio.sleep(delay)

    summary["errors"] = errors[:MAX_REPORTED_ERRORS]
    logger.bind(
        target_hour=hour,
        recipients_found=summary["recipients_found"],
        sent=summary["emails_sent"],
        failed=summary["emails_failed"],
        skipped=summary["emails_skipped"],
        dry_run=dry_run,
    ).info("daily_brief_dispatch_complete")
    return summary


async def _fallback_neighborhood_ids(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(Neighborhood.id)
        .where(Neighborhood.is_active == True)  # noqa: E712
        .order_by(Neighborhood.id)
        .limit(TEST_FALLBACK_NEIGHBORHOODS)
    )
    return list(result.scalars().all())


async def build_test_recipient(db: AsyncSession, email: str) -> Recipient | None:
    """Recipient for an existing profile or subscriber, ignoring timezone and opt-outs.

    Accounts without neighborhoods get a few active ones so the preview
    has something in it.
    """
    wanted = email.strip().lower()
    profile_result = await db.execute(
        select(Profile).where(func.lower(Profile.email) == wanted).limit(1)
    )
    profile = profile_result.scalar_one_or_none()
    if profile is not None:
        cities = await load_neighborhood_cities(db, profile.neighborhood_ids)
        recipient = profile_to_recipient(profile, cities)
    else:
        subscriber_result = await db.execute(
            select(NewsletterSubscriber)
            .where(func.lower(NewsletterSubscriber.email) == wanted)
            .limit(1)
        )
        subscriber = subscriber_result.scalar_one_or_none()
        if subscriber is None:
            return None
        recipient = subscriber_to_recipient(subscriber)

    if not recipient.subscribed_neighborhood_ids:
        fallback = await _fallback_neighborhood_ids(db)
        recipient.subscribed_neighborhood_ids = fallback
        recipient.primary_neighborhood_id = fallback[0] if fallback else None
    return recipient


def preview(content: DigestContent) -> dict[str, Any]:
    """What a dry-run test send would have contained."""
    primary = content.primary_section
    stories = [s.headline for s in primary.stories] if primary else []
    for section in content.satellite_sections:
        stories.extend(f"[{section.neighborhood_name}] {s.headline}" for s in section.stories)
    return {
        "email": content.recipient.email,
        "timezone": content.recipient.timezone,
        "primary_neighborhood": primary.neighborhood_name if primary else None,
        "primary_story_count": len(primary.stories) if primary else 0,
        "satellite_count": len(content.satellite_sections),
        "has_weather": bool(primary and (primary.weather or primary.weather_story)),
        "has_weather_story": bool(primary and primary.weather_story),
        "has_header_ad": content.header_ad is not None,
        "has_native_ad": content.native_ad is not None,
        "stories": stories,
    }


async def send_test_brief(
    pipeline: DigestPipeline,
    email: str,
    dry_run: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Send (or preview) the brief for one address, bypassing the timezone check."""
    db = pipeline.db
    summary = _empty_summary(dry_run)
    summary["test_mode"] = True

    recipient = await build_test_recipient(db, email)
    if recipient is None:
        summary["errors"] = [
            f"No subscriber found for {email}. "
            "The email must exist in profiles or newsletter subscribers."
        ]
        return summary

    summary["recipients_found"] = 1
    content = await pipeline.assembler.assemble(recipient, now=now)

    if dry_run:
        summary["preview"] = preview(content)
        return summary

    sent = await pipeline.sender.send(content, trigger=SendTrigger.TEST, now=now)
    await db.commit()
    if sent:
        summary["emails_sent"] = 1
    else:
        summary["emails_failed"] = 1
        summary["errors"] = [f"Failed to send to {email}"]

    logger.bind(email=email, sent=sent).info("test_brief_complete")
    return summary
