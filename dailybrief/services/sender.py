"""Daily Brief sender.

Renders and delivers one assembled brief, then records it. The record is
a single upsert keyed by (recipient, date, digest type), so a same-day
resend bumps ``version`` on the existing row instead of adding a second.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.config import DigestConfig
from dailybrief.core.database import dialect_insert
from dailybrief.core.datetime_utils import utc_now, utc_today
from dailybrief.core.logging import get_logger
from dailybrief.models.ad import Ad
from dailybrief.models.send_log import DigestSend, DigestType, SendTrigger
from dailybrief.schemas.digest import DigestContent
from dailybrief.services.email_service import DigestRenderer, EmailTransport
from dailybrief.services.rate_limiter import RateLimiter

logger = get_logger(__name__)

MORE_SUFFIX = " & more"


def truncate_at_word(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` chars at the last whole word. Empty if no word fits."""
    text = text.strip()
    if len(text) <= limit:
        return text
    if limit <= 0:
        return ""
    cut = text[: limit + 1]
    if " " not in cut:
        return ""
    return cut[: cut.rindex(" ")].rstrip(" ,;:-")


def build_subject(
    content: DigestContent,
    prefix: str = "Daily Brief",
    max_length: int = 70,
) -> str:
    """Subject line: "Daily Brief: <neighborhood>. <teaser>", never over max_length.

    Teaser preference:
    1. the brief generator's information-gap teaser, if it fits
    2. the lead headline cut at a word boundary, plus " & more" when
       there are other stories and room for it
    """
    primary = content.primary_section
    if primary is None:
        return prefix[:max_length]

    base = f"{prefix}: {primary.neighborhood_name}"
    if len(base) > max_length:
        return truncate_at_word(base, max_length) or base[:max_length]

    lead = f"{base}. "
    budget = max_length - len(lead)

    teaser = (content.subject_teaser or "").strip()
    if teaser and len(teaser) <= budget:
        return lead + teaser

    if primary.stories:
        headline = truncate_at_word(primary.stories[0].headline, budget)
        if headline:
            if len(primary.stories) > 1 and len(headline) + len(MORE_SUFFIX) <= budget:
                headline += MORE_SUFFIX
            return lead + headline

    return base


class Sender:
    """Delivers assembled briefs and keeps the send log."""

    def __init__(
        self,
        db: AsyncSession,
        renderer: DigestRenderer,
        transport: EmailTransport,
        from_address: str,
        rate_limiter: RateLimiter | None = None,
        config: DigestConfig | None = None,
    ) -> None:
        self.db = db
        self.renderer = renderer
        self.transport = transport
        self.from_address = from_address
        self.rate_limiter = rate_limiter or RateLimiter(db)
        self.config = config or DigestConfig({})

    def subject_for(self, content: DigestContent) -> str:
        return build_subject(
            content,
            prefix=self.config.subject_prefix,
            max_length=self.config.subject_max_length,
        )

    async def send(
        self,
        content: DigestContent,
        trigger: SendTrigger = SendTrigger.SCHEDULED,
        digest_type: DigestType = DigestType.DAILY_BRIEF,
        now: datetime | None = None,
    ) -> bool:
        """Send one brief. Returns True once the transport accepted it."""
        recipient = content.recipient
        today = utc_today(now)

        limit = await self.rate_limiter.check_daily_limit(recipient.id, today)
        if not limit.allowed:
            logger.bind(
                recipient_id=recipient.id,
                count=limit.count,
                limit=limit.limit,
            ).info("daily_brief_skipped_daily_limit")
            return False

        subject = self.subject_for(content)
        try:
            html = self.renderer.render(content, subject)
            delivered = await self.transport.send(recipient.email, subject, html, self.from_address)
        except Exception as e:
            logger.bind(recipient_id=recipient.id, email=recipient.email, error=str(e)).error(
                "daily_brief_send_error"
            )
            return False

        if not delivered:
            logger.bind(recipient_id=recipient.id, email=recipient.email).warning(
                "daily_brief_send_failed"
            )
            return False

        await self.record_send(content, trigger, digest_type, today)
        await self.increment_impressions(content)

        logger.bind(
            recipient_id=recipient.id,
            trigger=trigger.value,
            subject=subject,
            stories=content.story_count,
        ).info("daily_brief_sent")
        return True

    async def record_send(
        self,
        content: DigestContent,
        trigger: SendTrigger,
        digest_type: DigestType,
        today: date,
    ) -> None:
        """Upsert today's DigestSend row for the recipient."""
        recipient = content.recipient
        values = {
            "id": uuid.uuid4(),
            "recipient_id": recipient.id,
            "recipient_source": recipient.source,
            "email": recipient.email,
            "timezone": recipient.timezone,
            "digest_type": digest_type,
            "primary_neighborhood_id": (
                content.primary_section.neighborhood_id if content.primary_section else None
            ),
            "neighborhood_count": content.neighborhood_count,
            "story_count": content.story_count,
            "had_header_ad": content.header_ad is not None,
            "had_native_ad": content.native_ad is not None,
            "trigger": trigger,
            "version": 1,
            "send_date": today,
            "sent_at": utc_now(),
        }

        try:
            async with self.db.begin_nested():
                stmt = dialect_insert(self.db, DigestSend).values(**values)
                refreshed = {
                    key: stmt.excluded[key]
                    for key in values
                    if key not in ("id", "recipient_id", "send_date", "digest_type", "version")
                }
                await self.db.execute(
                    stmt.on_conflict_do_update(
                        index_elements=["recipient_id", "send_date", "digest_type"],
                        set_={**refreshed, "version": DigestSend.version + 1},
                    )
                )
        except SQLAlchemyError as e:
            # Delivered but unrecorded: the next hourly run may send again
            logger.bind(recipient_id=recipient.id, error=str(e)).error("send_record_failed")

    async def increment_impressions(self, content: DigestContent) -> None:
        """Count one impression per distinct paid ad in the email. Best effort.

        Each increment runs in its own savepoint so a failure cannot take
        the send record down with it.
        """
        ad_ids = {
            ad.id
            for ad in (content.header_ad, content.native_ad)
            if ad is not None and not ad.is_house_ad
        }
        for ad_id in ad_ids:
            try:
                async with self.db.begin_nested():
                    await self.db.execute(
                        update(Ad)
                        .where(Ad.id == uuid.UUID(ad_id))
                        .values(impressions=Ad.impressions + 1)
                    )
            except (SQLAlchemyError, ValueError) as e:
                logger.bind(ad_id=ad_id, error=str(e)).warning("ad_impression_increment_failed")
