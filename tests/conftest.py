"""
Pytest configuration and fixtures for Daily Brief tests.

Provides:
- Async test database with SQLite
- Fake renderer and transport so nothing reaches Resend
- Factory fixtures for creating test data
- A fixed reference time: Tuesday 2026-01-13 12:03 UTC (07:03 in New York)
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import StaticPool, event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dailybrief.config import AppConfig, Settings
from dailybrief.core.retry import RetryConfig
from dailybrief.models import Base
from dailybrief.models.ad import Ad, AdStatus, AdTargeting, HouseAd, HouseAdType
from dailybrief.models.content import Article, ArticleStatus, NeighborhoodBrief
from dailybrief.models.neighborhood import ComboNeighborhood, Neighborhood
from dailybrief.models.recipient import (
    NewsletterSubscriber,
    Profile,
    UserNeighborhoodPreference,
)
from dailybrief.schemas.digest import DigestContent, Recipient
from dailybrief.services.digest_pipeline import build_pipeline
from dailybrief.weather.forecast import ForecastClient

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 07:03 on a Tuesday in New York (EST, UTC-5)
NOW = datetime(2026, 1, 13, 12, 3, tzinfo=UTC)
NAIVE_NOW = NOW.replace(tzinfo=None)
TODAY = NOW.date()


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    resend_api_key: str = "test-key"
    base_url: str = "http://localhost:8000"
    email_domain: str = "example.com"
    scheduler_enabled: bool = False


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> TestSettings:
    return TestSettings()


@pytest.fixture
def app_config() -> AppConfig:
    """Default config with the inter-send delay switched off."""
    config = AppConfig()
    config.digest.delay_between_sends_ms = 0
    return config


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    # sqlite3 manages transactions itself and breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def savepoint_rollbacks(db_engine) -> list[str]:
    """Names of savepoints rolled back while the test runs."""
    names: list[str] = []

    def record(conn, name, context):
        names.append(name)

    event.listen(db_engine.sync_engine, "rollback_savepoint", record)
    yield names
    event.remove(db_engine.sync_engine, "rollback_savepoint", record)


async def fail_writes(db: AsyncSession, table: str, operation: str = "UPDATE") -> None:
    """Make every INSERT/UPDATE/DELETE on ``table`` raise, as an unavailable table would."""
    await db.execute(
        text(
            f"CREATE TRIGGER fail_{operation.lower()}_{table} BEFORE {operation} ON {table} "
            f"BEGIN SELECT RAISE(ABORT, '{table} is unavailable'); END"
        )
    )


# ============================================================================
# Fake email stack
# ============================================================================


class FakeRenderer:
    """Renders a short marker instead of the full template."""

    def __init__(self) -> None:
        self.rendered: list[tuple[DigestContent, str]] = []
        self.notices: list[Recipient] = []

    def render(self, content: DigestContent, subject: str) -> str:
        self.rendered.append((content, subject))
        return f"<html>{subject}</html>"

    def render_rate_limit_notice(self, recipient: Recipient) -> str:
        self.notices.append(recipient)
        return "<html>notice</html>"


class FakeTransport:
    """Records every send. Set ``succeed`` to False to simulate Resend rejecting."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[dict[str, str]] = []

    async def send(self, to: str, subject: str, html: str, from_address: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html, "from": from_address})
        return self.succeed


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def pipeline(db_session, settings, app_config, renderer, transport):
    """Pipeline wired to the test session, without weather."""
    return build_pipeline(
        db_session, settings, app_config, renderer=renderer, transport=transport
    )


# ============================================================================
# Forecast helpers
# ============================================================================


def forecast_payload(
    start: date,
    max_temps: list[float],
    precipitation: list[float] | None = None,
    snowfall: list[float] | None = None,
    hourly: dict[tuple[int, int], float] | None = None,
    current: float | None = 5.0,
) -> dict:
    """Open-Meteo style JSON for len(max_temps) days starting at ``start``.

    ``hourly`` maps (day offset, hour) to precipitation probability.
    """
    days = [start + timedelta(days=i) for i in range(len(max_temps))]
    hourly = hourly or {}
    hourly_time = []
    hourly_prob = []
    for offset, day in enumerate(days):
        for hour in range(24):
            hourly_time.append(f"{day.isoformat()}T{hour:02d}:00")
            hourly_prob.append(hourly.get((offset, hour), 0))

    payload = {
        "daily": {
            "time": [d.isoformat() for d in days],
            "temperature_2m_max": max_temps,
            "temperature_2m_min": [t - 8 for t in max_temps],
            "precipitation_sum": precipitation or [0.0] * len(days),
            "snowfall_sum": snowfall or [0.0] * len(days),
        },
        "hourly": {"time": hourly_time, "precipitation_probability": hourly_prob},
    }
    if current is not None:
        payload["current"] = {"temperature_2m": current}
    return payload


@pytest.fixture
def payload_factory():
    return forecast_payload


@pytest.fixture
def make_forecast_client():
    """Factory for ForecastClient instances backed by httpx.MockTransport."""

    def _create(handler) -> ForecastClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ForecastClient(
            client,
            base_url="https://weather.test/v1/forecast",
            retry_config=RetryConfig(max_attempts=2, backoff_base=0, jitter=False),
        )

    return _create


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def neighborhood_factory(db_session: AsyncSession):
    """Factory for creating test neighborhoods."""

    async def _create_neighborhood(
        id: str = None,
        name: str = "West Village",
        city: str = "New York",
        country: str = "USA",
        latitude: float | None = 40.7358,
        longitude: float | None = -74.0036,
        timezone: str = "America/New_York",
        is_combo: bool = False,
        is_active: bool = True,
        components: list[Neighborhood] | None = None,
    ) -> Neighborhood:
        if id is None:
            id = f"nyc-{uuid.uuid4().hex[:8]}"

        neighborhood = Neighborhood(
            id=id,
            name=name,
            city=city,
            country=country,
            latitude=latitude,
            longitude=longitude,
            timezone=timezone,
            is_combo=is_combo,
            is_active=is_active,
        )
        db_session.add(neighborhood)
        await db_session.flush()

        for order, component in enumerate(components or []):
            db_session.add(
                ComboNeighborhood(
                    combo_id=neighborhood.id,
                    component_id=component.id,
                    display_order=order,
                )
            )
        await db_session.flush()
        return neighborhood

    return _create_neighborhood


@pytest_asyncio.fixture
async def profile_factory(db_session: AsyncSession):
    """Factory for creating account holders with ordered neighborhood preferences."""

    async def _create_profile(
        email: str = None,
        neighborhood_ids: list[str] | None = None,
        timezone: str | None = "America/New_York",
        primary_neighborhood_id: str | None = None,
        primary_city: str | None = None,
        daily_email_enabled: bool = True,
        paused_topics: list[str] | None = None,
        referral_code: str | None = None,
    ) -> Profile:
        if email is None:
            email = f"test-{uuid.uuid4().hex[:8]}@example.com"

        profile = Profile(
            email=email,
            primary_timezone=timezone,
            primary_neighborhood_id=primary_neighborhood_id,
            primary_city=primary_city,
            daily_email_enabled=daily_email_enabled,
            paused_topics=paused_topics or [],
            referral_code=referral_code,
            neighborhood_preferences=[
                UserNeighborhoodPreference(neighborhood_id=nid, position=i)
                for i, nid in enumerate(neighborhood_ids or [])
            ],
        )
        db_session.add(profile)
        await db_session.flush()
        return profile

    return _create_profile


@pytest_asyncio.fixture
async def subscriber_factory(db_session: AsyncSession):
    """Factory for creating newsletter subscribers."""

    async def _create_subscriber(
        email: str = None,
        neighborhood_ids: list[str] | None = None,
        timezone: str | None = "America/New_York",
        email_verified: bool = True,
        daily_email_enabled: bool = True,
        paused_topics: list[str] | None = None,
    ) -> NewsletterSubscriber:
        if email is None:
            email = f"sub-{uuid.uuid4().hex[:8]}@example.com"

        subscriber = NewsletterSubscriber(
            email=email,
            neighborhood_ids=neighborhood_ids or [],
            timezone=timezone,
            email_verified=email_verified,
            daily_email_enabled=daily_email_enabled,
            paused_topics=paused_topics or [],
        )
        db_session.add(subscriber)
        await db_session.flush()
        return subscriber

    return _create_subscriber


@pytest_asyncio.fixture
async def article_factory(db_session: AsyncSession):
    """Factory for creating published articles."""

    async def _create_article(
        neighborhood_id: str,
        headline: str = "Test Article",
        category_label: str | None = "News",
        hours_ago: float = 2,
        status: ArticleStatus = ArticleStatus.PUBLISHED,
        image_url: str | None = None,
        preview_text: str | None = "Test preview",
        subject_teaser: str | None = None,
        slug: str | None = None,
    ) -> Article:
        article = Article(
            neighborhood_id=neighborhood_id,
            headline=headline,
            preview_text=preview_text,
            image_url=image_url,
            category_label=category_label,
            subject_teaser=subject_teaser,
            slug=slug or f"article-{uuid.uuid4().hex[:10]}",
            status=status,
            published_at=NAIVE_NOW - timedelta(hours=hours_ago),
        )
        db_session.add(article)
        await db_session.flush()
        return article

    return _create_article


@pytest_asyncio.fixture
async def neighborhood_brief_factory(db_session: AsyncSession):
    """Factory for creating rolling neighborhood briefs."""

    async def _create_brief(
        neighborhood_id: str,
        headline: str = "West Village DAILY BRIEF: Bleecker Buzz",
        content: str = (
            "The bakery on Bleecker reopened [[1]](https://example.com).\nLines are long."
        ),
        created_at: datetime = None,
        expires_in_hours: float = 24,
    ) -> NeighborhoodBrief:
        created = created_at or NAIVE_NOW - timedelta(hours=3)
        brief = NeighborhoodBrief(
            neighborhood_id=neighborhood_id,
            headline=headline,
            content=content,
            created_at=created,
            expires_at=NAIVE_NOW + timedelta(hours=expires_in_hours),
        )
        db_session.add(brief)
        await db_session.flush()
        return brief

    return _create_brief


@pytest_asyncio.fixture
async def ad_factory(db_session: AsyncSession):
    """Factory for creating paid ads booked around TODAY."""

    async def _create_ad(
        targeting: AdTargeting = AdTargeting.NEIGHBORHOOD,
        neighborhood_id: str | None = None,
        headline: str = "Sponsored Headline",
        status: AdStatus = AdStatus.ACTIVE,
        start_date: date = None,
        end_date: date = None,
        created_hours_ago: float = 24,
    ) -> Ad:
        ad = Ad(
            targeting=targeting,
            neighborhood_id=neighborhood_id,
            headline=headline,
            click_url="https://sponsor.example.com",
            image_url="https://sponsor.example.com/ad.png",
            sponsor_label="Acme",
            status=status,
            start_date=start_date or TODAY - timedelta(days=1),
            end_date=end_date or TODAY + timedelta(days=1),
            created_at=NAIVE_NOW - timedelta(hours=created_hours_ago),
        )
        db_session.add(ad)
        await db_session.flush()
        return ad

    return _create_ad


@pytest_asyncio.fixture
async def house_ad_factory(db_session: AsyncSession):
    """Factory for creating house ads."""

    async def _create_house_ad(
        type: HouseAdType = HouseAdType.SUGGEST_NEIGHBORHOOD,
        headline: str = "Suggest a neighborhood",
        body: str | None = None,
        click_url: str | None = "https://readflaneur.com/suggest",
        active: bool = True,
    ) -> HouseAd:
        house_ad = HouseAd(
            type=type,
            headline=headline,
            body=body,
            click_url=click_url,
            active=active,
        )
        db_session.add(house_ad)
        await db_session.flush()
        return house_ad

    return _create_house_ad
