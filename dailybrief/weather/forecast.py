"""Open-Meteo forecast client.

The HTTP client is injected so one ``httpx.AsyncClient`` can be shared
across a whole dispatch run and closed by whoever created it.
"""

import math

import httpx
from pydantic import ValidationError

from dailybrief.core.logging import get_logger
from dailybrief.core.retry import RetryConfig, retry_with_backoff
from dailybrief.schemas.weather import ForecastData, WeatherSnapshot

logger = get_logger(__name__)

OPEN_METEO_API = "https://api.open-meteo.com/v1/forecast"
FORECAST_DAYS = 3

FAHRENHEIT_COUNTRIES = frozenset({"USA", "US", "United States", "Liberia", "Myanmar", "Burma"})


def round_half_up(value: float) -> int:
    """Round half up: 2.5 -> 3, -2.5 -> -2."""
    return math.floor(value + 0.5)


def celsius_to_fahrenheit(celsius: float) -> int:
    return round_half_up(celsius * 9 / 5 + 32)


def should_use_fahrenheit(
    country: str | None, countries: frozenset[str] | set[str] = FAHRENHEIT_COUNTRIES
) -> bool:
    return bool(country) and country in countries


class ForecastClient:
    """Fetches 3-day forecasts (daily, hourly rain probability, current temp)."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = OPEN_METEO_API,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self.client = client
        self.base_url = base_url
        self.retry_config = retry_config or RetryConfig(max_attempts=2)

    async def fetch(self, latitude: float, longitude: float, timezone: str) -> ForecastData | None:
        """Fetch the forecast in the recipient's timezone. Returns None on any failure."""
        params = {
            "latitude": str(latitude),
            "longitude": str(longitude),
            "daily": "temperature_2m_max,temperature_2m_min,precipitation_sum,snowfall_sum",
            "hourly": "precipitation_probability",
            "current": "temperature_2m",
            "timezone": timezone,
            "forecast_days": str(FORECAST_DAYS),
        }

        async def _get() -> httpx.Response:
            resp = await self.client.get(self.base_url, params=params)
            if resp.status_code >= 500:
                resp.raise_for_status()
            return resp

        try:
            resp = await retry_with_backoff(
                _get,
                config=self.retry_config,
                operation_name="open_meteo_forecast",
            )
        except (httpx.HTTPError, OSError) as e:
            logger.bind(lat=latitude, lng=longitude, error=str(e)).warning("forecast_fetch_failed")
            return None

        if resp.status_code != 200:
            logger.bind(status_code=resp.status_code, lat=latitude, lng=longitude).warning(
                "forecast_bad_status"
            )
            return None

        try:
            return ForecastData.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            logger.bind(error=str(e)).warning("forecast_parse_failed")
            return None


def current_conditions(forecast: ForecastData, use_fahrenheit: bool) -> WeatherSnapshot | None:
    """Build the plain current-conditions snapshot from a forecast."""
    if forecast.current is None or forecast.current.temperature_2m is None:
        return None

    current = forecast.current.temperature_2m
    daily = forecast.daily
    high = daily.temperature_2m_max[0] if daily.temperature_2m_max else None
    low = daily.temperature_2m_min[0] if daily.temperature_2m_min else None

    return WeatherSnapshot(
        temperature_c=round_half_up(current),
        temperature_f=celsius_to_fahrenheit(current),
        high_c=round_half_up(high) if high is not None else None,
        low_c=round_half_up(low) if low is not None else None,
        use_fahrenheit=use_fahrenheit,
    )
