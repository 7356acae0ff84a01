"""Daily Brief recipient resolution.

Finds everyone whose local clock reads the target hour (7 AM by default)
right now. Two populations feed the run:

1. Profiles (account holders) with neighborhood preferences
2. Verified newsletter subscribers

The same address can live in both; the account always wins. Recipients
who already have today's DigestSend row are dropped so an hourly run can
never double-send.
"""

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.core.datetime_utils import is_target_hour, utc_today
from dailybrief.core.logging import get_logger
from dailybrief.core.security import generate_ref_code
from dailybrief.models.neighborhood import Neighborhood
from dailybrief.models.recipient import NewsletterSubscriber, Profile, RecipientSource
from dailybrief.models.send_log import DigestSend, DigestType
from dailybrief.schemas.digest import Recipient

logger = get_logger(__name__)

DEFAULT_TIMEZONE = "America/New_York"


def resolve_primary_neighborhood(
    explicit_id: str | None,
    primary_city: str | None,
    subscribed_ids: list[str],
    cities: dict[str, str],
) -> str | None:
    """Pick the primary neighborhood from a subscribed list.

    Order: the explicit primary if still subscribed, then the first
    neighborhood in the recorded primary city, then the first subscribed.
    """
    if not subscribed_ids:
        return None
    if explicit_id and explicit_id in subscribed_ids:
        return explicit_id
    if primary_city:
        wanted = primary_city.strip().lower()
        for neighborhood_id in subscribed_ids:
            if (cities.get(neighborhood_id) or "").lower() == wanted:
                return neighborhood_id
    return subscribed_ids[0]


def profile_to_recipient(profile: Profile, cities: dict[str, str]) -> Recipient:
    subscribed = profile.neighborhood_ids
    return Recipient(
        id=str(profile.id),
        email=profile.email,
        source=RecipientSource.PROFILE,
        timezone=profile.primary_timezone or DEFAULT_TIMEZONE,
        primary_neighborhood_id=resolve_primary_neighborhood(
            profile.primary_neighborhood_id, profile.primary_city, subscribed, cities
        ),
        subscribed_neighborhood_ids=subscribed,
        unsubscribe_token=profile.email_unsubscribe_token,
        paused_topics=list(profile.paused_topics or []),
        referral_code=profile.referral_code,
    )


def subscriber_to_recipient(subscriber: NewsletterSubscriber) -> Recipient:
    subscribed = list(subscriber.neighborhood_ids or [])
    return Recipient(
        id=str(subscriber.id),
        email=subscriber.email,
        source=RecipientSource.NEWSLETTER,
        timezone=subscriber.timezone or DEFAULT_TIMEZONE,
        primary_neighborhood_id=subscribed[0] if subscribed else None,
        subscribed_neighborhood_ids=subscribed,
        unsubscribe_token=subscriber.unsubscribe_token,
        paused_topics=list(subscriber.paused_topics or []),
        referral_code=subscriber.referral_code,
    )


async def load_neighborhood_cities(db: AsyncSession, ids: Iterable[str]) -> dict[str, str]:
    id_list = list(set(ids))
    if not id_list:
        return {}
    result = await db.execute(
        select(Neighborhood.id, Neighborhood.city).where(Neighborhood.id.in_(id_list))
    )
    return {row.id: row.city for row in result.all()}


def dedupe_by_email(recipients: list[Recipient]) -> list[Recipient]:
    """Keep the first recipient per lowercased email, accounts ahead of subscribers."""
    ordered = sorted(recipients, key=lambda r: 0 if r.source == RecipientSource.PROFILE else 1)
    seen: set[str] = set()
    unique = []
    for recipient in ordered:
        key = recipient.email.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(recipient)
    return unique


async def already_sent_ids(
    db: AsyncSession,
    recipient_ids: list[str],
    now: datetime | None = None,
) -> set[str]:
    """Ids among recipient_ids that already have today's Daily Brief record."""
    if not recipient_ids:
        return set()
    result = await db.execute(
        select(DigestSend.recipient_id).where(
            DigestSend.send_date == utc_today(now),
            DigestSend.digest_type == DigestType.DAILY_BRIEF,
            DigestSend.recipient_id.in_(recipient_ids),
        )
    )
    return set(result.scalars().all())


async def resolve_recipients(
    db: AsyncSession,
    target_hour: int = 7,
    now: datetime | None = None,
    assign_referral_codes: bool = True,
) -> list[Recipient]:
    """Recipients due for the Daily Brief this hour.

    Args:
        db: Database session
        target_hour: Local wall-clock hour to deliver at
        now: Reference time, defaults to the current time
        assign_referral_codes: Persist codes for recipients without one
            (off for dry runs, which must not write)

    Returns:
        Deduplicated recipients at their target hour with at least one
        neighborhood and no send record for today
    """
    profiles_result = await db.execute(
        select(Profile).where(
            Profile.daily_email_enabled == True,  # noqa: E712
            Profile.primary_timezone.is_not(None),
            Profile.email.is_not(None),
        )
    )
    due_profiles = [
        p
        for p in profiles_result.scalars().all()
        if p.neighborhood_ids and is_target_hour(p.primary_timezone, target_hour, now)
    ]

    subscribers_result = await db.execute(
        select(NewsletterSubscriber).where(
            NewsletterSubscriber.daily_email_enabled == True,  # noqa: E712
            NewsletterSubscriber.email_verified == True,  # noqa: E712
            NewsletterSubscriber.timezone.is_not(None),
            NewsletterSubscriber.email.is_not(None),
        )
    )
    due_subscribers = [
        s
        for s in subscribers_result.scalars().all()
        if s.neighborhood_ids and is_target_hour(s.timezone, target_hour, now)
    ]

    cities = await load_neighborhood_cities(
        db, (nid for p in due_profiles if p.primary_city for nid in p.neighborhood_ids)
    )
    candidates = dedupe_by_email(
        [profile_to_recipient(p, cities) for p in due_profiles]
        + [subscriber_to_recipient(s) for s in due_subscribers]
    )

    sent = await already_sent_ids(db, [r.id for r in candidates], now)
    recipients = [r for r in candidates if r.id not in sent]

    if assign_referral_codes:
        await assign_missing_referral_codes(db, recipients)

    logger.bind(
        target_hour=target_hour,
        profiles=len(due_profiles),
        subscribers=len(due_subscribers),
        already_sent=len(sent),
        recipients=len(recipients),
    ).info("recipients_resolved")
    return recipients


async def assign_missing_referral_codes(db: AsyncSession, recipients: list[Recipient]) -> None:
    """Give every recipient without one a referral code. Best effort.

    The updates share one savepoint. On a database error it is rolled
    back, the recipients go out without a footer invite link, and
    resolution carries on in the same transaction.
    """
    assigned: list[Recipient] = []
    try:
        async with db.begin_nested():
            for recipient in recipients:
                if recipient.referral_code:
                    continue
                model = (
                    Profile if recipient.source == RecipientSource.PROFILE else NewsletterSubscriber
                )
                code = generate_ref_code()
                await db.execute(
                    update(model)
                    .where(model.id == uuid.UUID(recipient.id), model.referral_code.is_(None))
                    .values(referral_code=code)
                )
                recipient.referral_code = code
                assigned.append(recipient)
    except SQLAlchemyError as e:
        for recipient in assigned:
            recipient.referral_code = None
        logger.bind(assigned=len(assigned), error=str(e)).warning("referral_code_assignment_failed")
