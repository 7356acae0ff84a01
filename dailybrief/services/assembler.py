"""Daily Brief content assembly.

Builds the full payload for one recipient: a primary section (weather plus
up to ``primary_story_count`` stories), one satellite section per other
subscribed neighborhood, and the ad slots.

Stories come from an escalating lookback (24h, 48h, a week) so quiet
neighborhoods still get content. When a section has no Daily Brief
article, one is looked up directly or synthesized from the rolling
neighborhood brief.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.config import DigestConfig
from dailybrief.core.database import dialect_insert
from dailybrief.core.datetime_utils import format_header_date, get_cutoff, to_naive_utc, utc_now
from dailybrief.core.logging import get_logger
from dailybrief.core.urls import article_path, email_link, slugify
from dailybrief.models.content import Article, ArticleStatus, NeighborhoodBrief
from dailybrief.models.neighborhood import ComboNeighborhood, Neighborhood
from dailybrief.schemas.digest import (
    DigestContent,
    PrimarySection,
    Recipient,
    SatelliteSection,
    Story,
)
from dailybrief.schemas.weather import ForecastData, WeatherSnapshot, WeatherStory
from dailybrief.services.ads import AdAllocator
from dailybrief.weather.forecast import current_conditions
from dailybrief.weather.story import WeatherStoryEngine

logger = get_logger(__name__)

BRIEF_PREVIEW_LENGTH = 200
BRIEF_SLUG_HEADLINE_LENGTH = 40
MIN_FETCH_ROWS = 8

_CITATION = re.compile(r"\[\[\d+\]\]\([^)]*\)")
_NEWLINES = re.compile(r"\n+")
_ANY_BRIEF_PREFIX = re.compile(r"^[^:]*DAILY\s+BRIEF\s*:\s*", re.IGNORECASE)


def is_brief(label: str | None, brief_category: str = "Daily Brief") -> bool:
    return bool(label) and brief_category.lower() in label.lower()


def clean_headline(headline: str, neighborhood_name: str) -> str:
    """Strip "<Neighborhood> DAILY BRIEF:" style prefixes.

    "Beverly Hills DAILY BRIEF: Bev Hills Buzz: ..." -> "Bev Hills Buzz: ..."
    Abbreviated names ("Bev Hills DAILY BRIEF:") are caught by the second pass.
    """
    named = re.compile(rf"^{re.escape(neighborhood_name)}\s+DAILY\s+BRIEF\s*:\s*", re.IGNORECASE)
    cleaned = named.sub("", headline, count=1)
    cleaned = _ANY_BRIEF_PREFIX.sub("", cleaned, count=1)
    return cleaned or headline


def clean_category_label(label: str | None, neighborhood_name: str) -> str | None:
    """Strip a leading neighborhood name: "Beverly Hills Daily Brief" -> "Daily Brief"."""
    if not label:
        return None
    prefix = re.compile(rf"^{re.escape(neighborhood_name)}\s+", re.IGNORECASE)
    cleaned = prefix.sub("", label, count=1)
    return cleaned or label


def brief_preview(content: str) -> str:
    """Plain-text preview of a brief: citations removed, single line, 200 chars."""
    plain = _NEWLINES.sub(" ", _CITATION.sub("", content)).strip()
    if len(plain) > BRIEF_PREVIEW_LENGTH:
        return plain[:BRIEF_PREVIEW_LENGTH] + "..."
    return plain


def brief_slug(neighborhood_id: str, brief_date: datetime, headline: str) -> str:
    """Deterministic slug so repeated runs reuse the synthesized article."""
    headline_part = slugify(headline, max_length=BRIEF_SLUG_HEADLINE_LENGTH)
    slug = f"{neighborhood_id}-brief-{brief_date:%Y%m%d}"
    return f"{slug}-{headline_part}" if headline_part else slug


def filter_paused_topics(
    articles: list[Article], paused_topics: list[str], brief_category: str = "Daily Brief"
) -> list[Article]:
    """Drop articles whose category matches a paused topic. Briefs are never paused."""
    topics = [t.lower() for t in paused_topics if t and t.strip()]
    if not topics:
        return articles

    kept = []
    for article in articles:
        label = (article.category_label or "").lower()
        if is_brief(label, brief_category) or not any(t in label for t in topics):
            kept.append(article)
    return kept


@dataclass
class SectionContent:
    stories: list[Story]
    subject_teaser: str | None = None


class ContentAssembler:
    """Assembles DigestContent for one recipient at a time."""

    def __init__(
        self,
        db: AsyncSession,
        base_url: str,
        config: DigestConfig | None = None,
        weather_engine: WeatherStoryEngine | None = None,
        ad_allocator: AdAllocator | None = None,
    ) -> None:
        self.db = db
        self.base_url = base_url
        self.config = config or DigestConfig({})
        self.weather_engine = weather_engine
        self.ad_allocator = ad_allocator or AdAllocator(db, base_url)

    async def assemble(self, recipient: Recipient, now: datetime | None = None) -> DigestContent:
        """Build the complete Daily Brief for one recipient."""
        now = to_naive_utc(now) if now else utc_now()
        neighborhoods = await self._load_neighborhoods(recipient.subscribed_neighborhood_ids)
        primary = neighborhoods.get(recipient.primary_neighborhood_id or "")

        forecast_task = self._start_forecast(primary, recipient.timezone)
        try:
            primary_section = None
            subject_teaser = None
            if primary is not None:
                section = await self._build_section(
                    primary,
                    limit=self.config.primary_story_count,
                    brief_limit=self.config.primary_story_count,
                    paused_topics=recipient.paused_topics,
                    now=now,
                )
                subject_teaser = section.subject_teaser
                primary_section = PrimarySection(
                    neighborhood_id=primary.id,
                    neighborhood_name=primary.name,
                    city_name=primary.city,
                    stories=section.stories,
                )

            satellites = []
            for neighborhood_id in recipient.subscribed_neighborhood_ids:
                if neighborhood_id == recipient.primary_neighborhood_id:
                    continue
                neighborhood = neighborhoods.get(neighborhood_id)
                if neighborhood is None:
                    continue
                section = await self._build_section(
                    neighborhood,
                    limit=self.config.satellite_story_count,
                    brief_limit=self.config.satellite_story_count + 1,
                    paused_topics=recipient.paused_topics,
                    now=now,
                )
                if section.stories:
                    satellites.append(
                        SatelliteSection(
                            neighborhood_id=neighborhood.id,
                            neighborhood_name=neighborhood.name,
                            city_name=neighborhood.city,
                            stories=section.stories,
                        )
                    )

            slots = await self.ad_allocator.allocate(
                recipient.primary_neighborhood_id,
                recipient.subscribed_neighborhood_ids,
                today=now.date(),
            )

            if primary_section is not None and forecast_task is not None:
                snapshot, story = await self._weather(forecast_task, primary, recipient, now)
                primary_section.weather = snapshot
                primary_section.weather_story = story
        finally:
            if forecast_task is not None and not forecast_task.done():
                forecast_task.cancel()

        content = DigestContent(
            recipient=recipient,
            date=format_header_date(recipient.timezone, now),
            primary_section=primary_section,
            satellite_sections=satellites,
            header_ad=slots.header_ad,
            native_ad=slots.native_ad,
            subject_teaser=subject_teaser,
        )
        logger.bind(
            recipient_id=recipient.id,
            primary=recipient.primary_neighborhood_id,
            neighborhood_count=content.neighborhood_count,
            story_count=content.story_count,
            has_weather_story=bool(primary_section and primary_section.weather_story),
        ).debug("digest_assembled")
        return content

    async def expand_neighborhood_ids(self, neighborhood: Neighborhood) -> list[str]:
        """Combo neighborhoods query the combo id plus every component id."""
        if not neighborhood.is_combo:
            return [neighborhood.id]

        result = await self.db.execute(
            select(ComboNeighborhood.component_id)
            .where(ComboNeighborhood.combo_id == neighborhood.id)
            .order_by(ComboNeighborhood.display_order)
        )
        components = list(result.scalars().all())
        if not components:
            return [neighborhood.id]
        return [neighborhood.id, *components]

    async def fetch_stories(
        self,
        neighborhood_ids: list[str],
        limit: int,
        paused_topics: list[str],
        now: datetime,
    ) -> list[Article]:
        """Recent published articles, widening the window until something turns up."""
        articles: list[Article] = []
        for hours in self.config.lookback_hours:
            result = await self.db.execute(
                select(Article)
                .where(
                    Article.neighborhood_id.in_(neighborhood_ids),
                    Article.status == ArticleStatus.PUBLISHED,
                    Article.published_at >= get_cutoff(hours=hours, now=now),
                )
                .order_by(Article.published_at.desc())
                .limit(max(limit + 3, MIN_FETCH_ROWS))
            )
            articles = list(result.scalars().all())
            if articles:
                break

        articles = filter_paused_topics(articles, paused_topics, self.config.brief_category)
        # Stable sort keeps recency order behind the brief
        brief_category = self.config.brief_category
        articles.sort(key=lambda a: 0 if is_brief(a.category_label, brief_category) else 1)
        return articles[:limit]

    async def find_brief_article(
        self, neighborhood_ids: list[str], now: datetime
    ) -> Article | None:
        """Latest published Daily Brief article within the widest lookback."""
        widest = max(self.config.lookback_hours)
        result = await self.db.execute(
            select(Article)
            .where(
                Article.neighborhood_id.in_(neighborhood_ids),
                Article.status == ArticleStatus.PUBLISHED,
                Article.category_label.ilike(f"%{self.config.brief_category}%"),
                Article.published_at >= get_cutoff(hours=widest, now=now),
            )
            .order_by(Article.published_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def synthesize_brief_article(
        self, neighborhood: Neighborhood, now: datetime
    ) -> Article | None:
        """Turn the newest unexpired neighborhood brief into an article row.

        The slug is deterministic, so a second run finds the row the first
        one wrote. If the insert fails the article is still returned
        (unsaved) so the email keeps its brief.
        """
        result = await self.db.execute(
            select(NeighborhoodBrief)
            .where(
                NeighborhoodBrief.neighborhood_id == neighborhood.id,
                NeighborhoodBrief.expires_at >= now,
            )
            .order_by(NeighborhoodBrief.created_at.desc())
            .limit(1)
        )
        brief = result.scalar_one_or_none()
        if brief is None:
            return None

        slug = brief_slug(neighborhood.id, brief.created_at, brief.headline)
        values = {
            "neighborhood_id": neighborhood.id,
            "headline": clean_headline(brief.headline, neighborhood.name),
            "preview_text": brief_preview(brief.content),
            "body_text": brief.content,
            "category_label": self.config.brief_category,
            "slug": slug,
            "status": ArticleStatus.PUBLISHED,
            "published_at": brief.created_at,
        }

        try:
            async with self.db.begin_nested():
                stmt = dialect_insert(self.db, Article).values(**values)
                await self.db.execute(stmt.on_conflict_do_nothing(index_elements=["slug"]))
                saved = await self.db.execute(select(Article).where(Article.slug == slug))
                article = saved.scalar_one()
        except (SQLAlchemyError, ValueError) as e:
            logger.bind(neighborhood_id=neighborhood.id, slug=slug, error=str(e)).warning(
                "brief_article_insert_failed"
            )
            return Article(**values)

        logger.bind(neighborhood_id=neighborhood.id, slug=slug).debug("brief_article_synthesized")
        return article

    def to_story(self, article: Article, neighborhood: Neighborhood) -> Story:
        image_url = article.image_url
        if image_url and image_url.lower().endswith(".svg"):
            image_url = None

        path = article_path(article.neighborhood_id, neighborhood.city, article.slug)
        return Story(
            headline=clean_headline(article.headline, neighborhood.name),
            preview_text=article.preview_text or "",
            image_url=image_url,
            category_label=clean_category_label(article.category_label, neighborhood.name),
            article_url=email_link(self.base_url, path),
            location=f"{neighborhood.name}, {neighborhood.city}",
        )

    async def _load_neighborhoods(self, ids: list[str]) -> dict[str, Neighborhood]:
        if not ids:
            return {}
        result = await self.db.execute(select(Neighborhood).where(Neighborhood.id.in_(ids)))
        return {n.id: n for n in result.scalars().all()}

    async def _build_section(
        self,
        neighborhood: Neighborhood,
        limit: int,
        brief_limit: int,
        paused_topics: list[str],
        now: datetime,
    ) -> SectionContent:
        query_ids = await self.expand_neighborhood_ids(neighborhood)
        articles = await self.fetch_stories(query_ids, limit, paused_topics, now)

        if not any(is_brief(a.category_label, self.config.brief_category) for a in articles):
            brief = await self.find_brief_article(query_ids, now)
            if brief is None:
                brief = await self.synthesize_brief_article(neighborhood, now)
            if brief is not None:
                articles = [brief, *articles][:brief_limit]

        teaser = next(
            (
                a.subject_teaser
                for a in articles
                if a.subject_teaser and is_brief(a.category_label, self.config.brief_category)
            ),
            None,
        )
        return SectionContent(
            stories=[self.to_story(a, neighborhood) for a in articles],
            subject_teaser=teaser,
        )

    def _start_forecast(
        self, primary: Neighborhood | None, timezone: str
    ) -> asyncio.Task[ForecastData | None] | None:
        if self.weather_engine is None or primary is None:
            return None
        if primary.latitude is None or primary.longitude is None:
            return None
        return asyncio.create_task(
            self.weather_engine.forecast_client.fetch(primary.latitude, primary.longitude, timezone)
        )

    async def _weather(
        self,
        forecast_task: asyncio.Task[ForecastData | None],
        primary: Neighborhood,
        recipient: Recipient,
        now: datetime,
    ) -> tuple[WeatherSnapshot | None, WeatherStory | None]:
        try:
            forecast = await forecast_task
            if forecast is None:
                return None, None
            use_f = self.weather_engine.use_fahrenheit(primary.country)
            snapshot = current_conditions(forecast, use_f)
            story = self.weather_engine.evaluate(
                forecast,
                timezone=recipient.timezone,
                city_name=primary.city,
                use_fahrenheit=use_f,
                now=now,
            )
            return snapshot, story
        except (httpx.HTTPError, ValueError, IndexError) as e:
            logger.bind(
                recipient_id=recipient.id,
                neighborhood_id=primary.id,
                error=str(e),
            ).warning("weather_unavailable")
            return None, None
