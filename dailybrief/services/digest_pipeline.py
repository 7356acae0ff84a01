"""Wires the Daily Brief components for one database session.

Entry points (hourly job, CLI, scheduler) own the session and the HTTP
client and hand them in; nothing here is cached at module level.
"""

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from dailybrief.config import AppConfig, Settings
from dailybrief.core.retry import RetryConfig
from dailybrief.services.ads import AdAllocator
from dailybrief.services.assembler import ContentAssembler
from dailybrief.services.email_service import (
    DigestRenderer,
    EmailTransport,
    JinjaDigestRenderer,
    ResendTransport,
    default_from_address,
)
from dailybrief.services.rate_limiter import RateLimiter
from dailybrief.services.sender import Sender
from dailybrief.weather.forecast import ForecastClient
from dailybrief.weather.story import WeatherStoryEngine


@dataclass
class DigestPipeline:
    db: AsyncSession
    config: AppConfig
    assembler: ContentAssembler
    sender: Sender
    rate_limiter: RateLimiter


def build_weather_engine(
    http_client: httpx.AsyncClient | None, settings: Settings, config: AppConfig
) -> WeatherStoryEngine | None:
    if http_client is None or not config.weather.enabled:
        return None
    forecast_client = ForecastClient(
        http_client,
        base_url=settings.open_meteo_url,
        retry_config=RetryConfig(max_attempts=config.weather.max_retries),
    )
    return WeatherStoryEngine(forecast_client, set(config.weather.fahrenheit_countries))


def build_pipeline(
    db: AsyncSession,
    settings: Settings,
    config: AppConfig,
    http_client: httpx.AsyncClient | None = None,
    renderer: DigestRenderer | None = None,
    transport: EmailTransport | None = None,
) -> DigestPipeline:
    """Build assembler, sender and rate limiter sharing one session."""
    rate_limiter = RateLimiter(db, config.rate_limits)
    assembler = ContentAssembler(
        db,
        settings.base_url,
        config=config.digest,
        weather_engine=build_weather_engine(http_client, settings, config),
        ad_allocator=AdAllocator(db, settings.base_url, config.ads),
    )
    sender = Sender(
        db,
        renderer=renderer or JinjaDigestRenderer(settings.base_url),
        transport=transport or ResendTransport(settings.resend_api_key),
        from_address=default_from_address(settings),
        rate_limiter=rate_limiter,
        config=config.digest,
    )
    return DigestPipeline(
        db=db,
        config=config,
        assembler=assembler,
        sender=sender,
        rate_limiter=rate_limiter,
    )
