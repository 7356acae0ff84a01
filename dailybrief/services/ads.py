"""Ad selection for Daily Brief emails.

Picks the header and native slot for one recipient. Only ads booked for
today are eligible. With exclusivity one paid ad fills both slots; a
second matching booking takes the native slot instead. When nothing is
booked, a random house ad fills the native slot.
"""

import math
import random
from dataclasses import dataclass
from datetime import date

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.config import AdsConfig
from dailybrief.core.datetime_utils import utc_today
from dailybrief.core.logging import get_logger
from dailybrief.core.urls import article_path
from dailybrief.models.ad import Ad, AdStatus, AdTargeting, HouseAd, HouseAdType
from dailybrief.models.content import Article, ArticleStatus
from dailybrief.models.neighborhood import Neighborhood
from dailybrief.schemas.digest import AdSlots, EmailAd

logger = get_logger(__name__)

NEIGHBORHOOD_COUNT_PLACEHOLDER = "{{neighborhood_count}}"
EARTH_RADIUS_KM = 6371.0


@dataclass
class DiscoveryResult:
    """A nearby neighborhood the recipient hasn't subscribed to, with its latest brief."""

    url: str
    neighborhood_name: str


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def paid_ad_to_email_ad(ad: Ad, base_url: str) -> EmailAd:
    return EmailAd(
        id=str(ad.id),
        image_url=ad.image_url or "",
        headline=ad.headline,
        click_url=ad.click_url,
        sponsor_label=ad.sponsor_label or "Sponsored",
        impression_url=f"{base_url}/api/ads/{ad.id}/impression?source=email",
    )


async def find_discovery_brief(
    db: AsyncSession,
    subscribed_ids: list[str],
    reference_neighborhood_id: str | None,
    max_candidates: int = 10,
    rng: random.Random | None = None,
) -> DiscoveryResult | None:
    """Find the nearest unsubscribed neighborhood that has a published Daily Brief.

    Candidates are active, non-combo neighborhoods. With a reference
    neighborhood that has coordinates they are tried nearest first;
    without a reference they are shuffled.
    """
    result = await db.execute(
        select(Neighborhood).where(
            Neighborhood.is_active == True,  # noqa: E712
            Neighborhood.is_combo == False,  # noqa: E712
        )
    )
    neighborhoods = list(result.scalars().all())
    if not neighborhoods:
        return None

    subscribed = set(subscribed_ids)
    candidates = [n for n in neighborhoods if n.id not in subscribed]
    if not candidates:
        return None

    if reference_neighborhood_id:
        ref = next((n for n in neighborhoods if n.id == reference_neighborhood_id), None)
        if ref is not None and ref.latitude is not None and ref.longitude is not None:
            candidates = sorted(
                (n for n in candidates if n.latitude is not None and n.longitude is not None),
                key=lambda n: haversine_km(ref.latitude, ref.longitude, n.latitude, n.longitude),
            )
    else:
        (rng or random).shuffle(candidates)

    for candidate in candidates[:max_candidates]:
        article_result = await db.execute(
            select(Article.slug)
            .where(
                Article.neighborhood_id == candidate.id,
                Article.status == ArticleStatus.PUBLISHED,
                Article.category_label.ilike("%Daily Brief%"),
            )
            .order_by(Article.published_at.desc())
            .limit(1)
        )
        slug = article_result.scalar_one_or_none()
        if slug:
            return DiscoveryResult(
                url=article_path(candidate.id, candidate.city, slug),
                neighborhood_name=candidate.name,
            )

    return None


class AdAllocator:
    """Fills the header and native ad slots for one recipient."""

    def __init__(
        self,
        db: AsyncSession,
        base_url: str,
        config: AdsConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.db = db
        self.base_url = base_url
        self.config = config or AdsConfig({})
        self.rng = rng or random.Random()

    async def allocate(
        self,
        primary_neighborhood_id: str | None,
        all_neighborhood_ids: list[str],
        today: date | None = None,
    ) -> AdSlots:
        """Pick ads for a recipient. Query failures leave both slots empty.

        The lookups run in a savepoint so a failed query is rolled back on
        its own and the rest of the recipient's transaction stays usable.
        """
        try:
            async with self.db.begin_nested():
                paid = await self.fetch_paid_ads(all_neighborhood_ids, today or utc_today())
                if not paid:
                    house = await self.pick_house_ad(
                        all_neighborhood_ids, primary_neighborhood_id
                    )
                    return AdSlots(header_ad=None, native_ad=house)

            header = paid_ad_to_email_ad(paid[0], self.base_url)
            native = paid_ad_to_email_ad(paid[1], self.base_url) if len(paid) > 1 else header
            return AdSlots(header_ad=header, native_ad=native)
        except SQLAlchemyError as e:
            logger.bind(
                primary_neighborhood_id=primary_neighborhood_id,
                error=str(e),
            ).warning("ad_allocation_failed")
            return AdSlots()

    async def fetch_paid_ads(self, neighborhood_ids: list[str], today: date) -> list[Ad]:
        """Active paid ads booked for today, best match first.

        Neighborhood-targeted and plain global bookings rank ahead of
        global takeovers; newest first within each group.
        """
        targeting_filter = [
            Ad.targeting.in_([AdTargeting.GLOBAL, AdTargeting.GLOBAL_TAKEOVER]),
        ]
        if neighborhood_ids:
            targeting_filter.append(
                and_(
                    Ad.targeting == AdTargeting.NEIGHBORHOOD,
                    Ad.neighborhood_id.in_(neighborhood_ids),
                )
            )

        takeover_last = case((Ad.targeting == AdTargeting.GLOBAL_TAKEOVER, 1), else_=0)
        result = await self.db.execute(
            select(Ad)
            .where(
                Ad.status == AdStatus.ACTIVE,
                Ad.start_date <= today,
                Ad.end_date >= today,
                or_(*targeting_filter),
            )
            .order_by(takeover_last, Ad.created_at.desc())
        )
        return list(result.scalars().all())

    async def pick_house_ad(
        self,
        subscribed_ids: list[str],
        primary_neighborhood_id: str | None,
    ) -> EmailAd | None:
        """Random house ad from the pool. Newsletter pitches are skipped for subscribers."""
        result = await self.db.execute(
            select(HouseAd)
            .where(
                HouseAd.active == True,  # noqa: E712
                HouseAd.type != HouseAdType.NEWSLETTER,
            )
            .limit(self.config.house_ad_pool_size)
        )
        house_ads = list(result.scalars().all())
        if not house_ads:
            return None

        ad = self.rng.choice(house_ads)
        click_url = ad.click_url or self.base_url

        match ad.type:
            case HouseAdType.APP_DOWNLOAD:
                click_url = await self._discovery_url(
                    subscribed_ids, primary_neighborhood_id, fallback=click_url
                )
            case (
                HouseAdType.NEWSLETTER
                | HouseAdType.SUNDAY_EDITION
                | HouseAdType.SUGGEST_NEIGHBORHOOD
                | HouseAdType.ADVERTISE
            ):
                pass

        body = ad.body or None
        if body and NEIGHBORHOOD_COUNT_PLACEHOLDER in body:
            count = await self.active_neighborhood_count()
            body = body.replace(NEIGHBORHOOD_COUNT_PLACEHOLDER, str(count))

        return EmailAd(
            id=f"house-{ad.id}",
            image_url=ad.image_url or "",
            headline=ad.headline or "",
            body=body,
            click_url=click_url,
            sponsor_label=self.config.house_ad_sponsor_label,
            impression_url="",
        )

    async def active_neighborhood_count(self) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Neighborhood)
            .where(
                Neighborhood.is_active == True,  # noqa: E712
                Neighborhood.is_combo == False,  # noqa: E712
            )
        )
        return result.scalar_one() or self.config.neighborhood_count_fallback

    async def _discovery_url(
        self,
        subscribed_ids: list[str],
        primary_neighborhood_id: str | None,
        fallback: str,
    ) -> str:
        try:
            async with self.db.begin_nested():
                discovery = await find_discovery_brief(
                    self.db,
                    subscribed_ids,
                    primary_neighborhood_id,
                    max_candidates=self.config.discovery_candidates,
                    rng=self.rng,
                )
        except SQLAlchemyError as e:
            logger.bind(error=str(e)).warning("discovery_brief_lookup_failed")
            return fallback

        if discovery is None:
            return fallback
        return f"{self.base_url}{discovery.url}"
