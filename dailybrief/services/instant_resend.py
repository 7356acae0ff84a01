"""Instant Daily Brief resend.

When a recipient changes something that shapes their brief (city,
neighborhoods, paused topics) today's email goes out again right away
with the new preferences. Capped at a few resends a day; past the cap the
recipient gets a short "changes apply tomorrow" notice instead.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.core.datetime_utils import utc_today
from dailybrief.core.logging import get_logger
from dailybrief.models.recipient import NewsletterSubscriber, Profile, RecipientSource
from dailybrief.models.send_log import InstantResendLog, ResendTrigger
from dailybrief.schemas.digest import Recipient
from dailybrief.services.digest_pipeline import DigestPipeline
from dailybrief.services.email_service import send_rate_limit_notice
from dailybrief.services.recipients import (
    load_neighborhood_cities,
    profile_to_recipient,
    subscriber_to_recipient,
)

logger = get_logger(__name__)


class ResendReason(str, enum.Enum):
    SENT = "sent"
    EMAIL_DISABLED = "email_disabled"
    NO_RECIPIENT = "no_recipient"
    RATE_LIMITED = "rate_limited"
    SEND_FAILED = "send_failed"
    ERROR = "error"


@dataclass
class ResendResult:
    success: bool
    reason: ResendReason
    error: str | None = None


def is_weekly_edition_day(weekly_edition_day: int | None, now: datetime | None = None) -> bool:
    """True on the UTC weekday when the Sunday Edition replaces the Daily Brief."""
    if weekly_edition_day is None:
        return False
    return utc_today(now).weekday() == weekly_edition_day


async def build_recipient_for_resend(
    db: AsyncSession,
    user_id: str,
    source: RecipientSource,
) -> Recipient | None:
    """Rebuild a recipient from current preferences.

    None when the row is missing, has no email, has digests turned off or
    has no subscribed neighborhoods.
    """
    try:
        key = uuid.UUID(user_id)
    except ValueError:
        return None

    match source:
        case RecipientSource.PROFILE:
            profile = await db.get(Profile, key, populate_existing=True)
            if profile is None or not profile.email or not profile.daily_email_enabled:
                return None
            if not profile.neighborhood_ids:
                return None
            cities = {}
            if profile.primary_city:
                cities = await load_neighborhood_cities(db, profile.neighborhood_ids)
            return profile_to_recipient(profile, cities)

        case RecipientSource.NEWSLETTER:
            subscriber = await db.get(NewsletterSubscriber, key, populate_existing=True)
            if subscriber is None or not subscriber.email or not subscriber.daily_email_enabled:
                return None
            if not subscriber.neighborhood_ids:
                return None
            return subscriber_to_recipient(subscriber)


async def perform_instant_resend(
    pipeline: DigestPipeline,
    user_id: str,
    source: RecipientSource,
    trigger: ResendTrigger,
    now: datetime | None = None,
) -> ResendResult:
    """Re-send today's brief after a preference change.

    Steps: skip on the weekly edition day, rebuild the recipient, check the
    resend cap then the daily cap, assemble and send. Sender's upsert
    replaces today's send record. The resend is logged once past the rate
    checks, whatever the send outcome.
    """
    db = pipeline.db
    log = logger.bind(user_id=user_id, source=source.value, trigger=trigger.value)

    try:
        if is_weekly_edition_day(pipeline.config.digest.weekly_edition_day, now):
            log.info("instant_resend_skipped_weekly_edition")
            return ResendResult(success=False, reason=ResendReason.EMAIL_DISABLED)

        recipient = await build_recipient_for_resend(db, user_id, source)
        if recipient is None:
            log.info("instant_resend_no_recipient")
            return ResendResult(success=False, reason=ResendReason.NO_RECIPIENT)

        for check in (
            pipeline.rate_limiter.check_resend_limit,
            pipeline.rate_limiter.check_daily_limit,
        ):
            limit = await check(recipient.id, utc_today(now))
            if not limit.allowed:
                sender = pipeline.sender
                await send_rate_limit_notice(
                    recipient, sender.renderer, sender.transport, sender.from_address
                )
                log.bind(count=limit.count, limit=limit.limit).info("instant_resend_rate_limited")
                return ResendResult(success=False, reason=ResendReason.RATE_LIMITED)

        try:
            content = await pipeline.assembler.assemble(recipient, now=now)
            sent = await pipeline.sender.send(
                content, trigger=trigger.as_send_trigger(), now=now
            )
        finally:
            await _log_resend(db, recipient, trigger, now)

        if not sent:
            log.warning("instant_resend_send_failed")
            return ResendResult(success=False, reason=ResendReason.SEND_FAILED)

        log.bind(email=recipient.email).info("instant_resend_sent")
        return ResendResult(success=True, reason=ResendReason.SENT)

    except Exception as e:
        log.bind(error=str(e)).error("instant_resend_error")
        return ResendResult(success=False, reason=ResendReason.ERROR, error=str(e))


async def _log_resend(
    db: AsyncSession,
    recipient: Recipient,
    trigger: ResendTrigger,
    now: datetime | None,
) -> None:
    try:
        async with db.begin_nested():
            db.add(
                InstantResendLog(
                    recipient_id=recipient.id,
                    recipient_source=recipient.source,
                    trigger=trigger,
                    send_date=utc_today(now),
                )
            )
    except SQLAlchemyError as e:
        logger.bind(recipient_id=recipient.id, error=str(e)).warning("instant_resend_log_failed")
