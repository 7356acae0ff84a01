"""Per-recipient daily send caps.

Two independent limits:
- instant resends: max_resends_per_day per recipient (InstantResendLog)
- all content digests: max_emails_per_day per recipient. Every delivered
  digest upserts today's DigestSend row for its type and bumps
  ``version``, so the summed versions are the emails actually sent today,
  resends included, each counted once

Both fail open. If the count query errors we log and allow, so a database
hiccup never silently drops a whole day of digests. The queries run in a
savepoint so a failed count leaves the caller's transaction usable.
"""

from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.config import RateLimitConfig
from dailybrief.core.datetime_utils import utc_today
from dailybrief.core.logging import get_logger
from dailybrief.models.send_log import DigestSend, InstantResendLog

logger = get_logger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    count: int
    limit: int


class RateLimiter:
    def __init__(self, db: AsyncSession, config: RateLimitConfig | None = None) -> None:
        self.db = db
        self.config = config or RateLimitConfig({})

    async def check_resend_limit(
        self, recipient_id: str, today: date | None = None
    ) -> RateLimitResult:
        """Has this recipient used up today's instant resends?"""
        limit = self.config.max_resends_per_day
        try:
            async with self.db.begin_nested():
                count = await self._count_resends(recipient_id, today or utc_today())
        except SQLAlchemyError as e:
            logger.bind(recipient_id=recipient_id, error=str(e)).warning(
                "resend_limit_check_failed_open"
            )
            return RateLimitResult(allowed=True, count=0, limit=limit)

        result = RateLimitResult(allowed=count < limit, count=count, limit=limit)
        if not result.allowed:
            logger.bind(recipient_id=recipient_id, count=count, limit=limit).info(
                "resend_limit_reached"
            )
        return result

    async def check_daily_limit(
        self, recipient_id: str, today: date | None = None
    ) -> RateLimitResult:
        """Has this recipient hit the cap on content emails for today?"""
        limit = self.config.max_emails_per_day
        day = today or utc_today()
        try:
            async with self.db.begin_nested():
                count = await self._count_delivered(recipient_id, day)
        except SQLAlchemyError as e:
            logger.bind(recipient_id=recipient_id, error=str(e)).warning(
                "daily_limit_check_failed_open"
            )
            return RateLimitResult(allowed=True, count=0, limit=limit)

        result = RateLimitResult(allowed=count < limit, count=count, limit=limit)
        if not result.allowed:
            logger.bind(recipient_id=recipient_id, count=count, limit=limit).info(
                "daily_email_limit_reached"
            )
        return result

    async def _count_delivered(self, recipient_id: str, day: date) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(DigestSend.version), 0)).where(
                DigestSend.recipient_id == recipient_id,
                DigestSend.send_date == day,
            )
        )
        return int(result.scalar_one() or 0)

    async def _count_resends(self, recipient_id: str, day: date) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(InstantResendLog)
            .where(
                InstantResendLog.recipient_id == recipient_id,
                InstantResendLog.send_date == day,
            )
        )
        return result.scalar_one() or 0
