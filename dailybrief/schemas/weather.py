"""Open-Meteo forecast payload and the editorial weather story."""

import enum

from pydantic import BaseModel, Field


class DailyForecast(BaseModel):
    """Parallel daily arrays as returned by Open-Meteo (local dates, YYYY-MM-DD)."""

    time: list[str] = Field(default_factory=list)
    temperature_2m_max: list[float | None] = Field(default_factory=list)
    temperature_2m_min: list[float | None] = Field(default_factory=list)
    precipitation_sum: list[float | None] = Field(default_factory=list)
    snowfall_sum: list[float | None] = Field(default_factory=list)


class HourlyForecast(BaseModel):
    """Parallel hourly arrays (local times, YYYY-MM-DDTHH:MM)."""

    time: list[str] = Field(default_factory=list)
    precipitation_probability: list[float | None] = Field(default_factory=list)


class CurrentConditions(BaseModel):
    temperature_2m: float | None = None


class ForecastData(BaseModel):
    """3-day forecast for one location."""

    daily: DailyForecast
    hourly: HourlyForecast = Field(default_factory=HourlyForecast)
    current: CurrentConditions | None = None


class WeatherPriority(enum.IntEnum):
    """Lower value wins. Only the first rule that fires becomes the story."""

    SAFETY = 1
    COMMUTE = 2
    WEEKEND = 3
    ANOMALY = 4


class WeatherStory(BaseModel):
    """Editorial weather alert shown above the primary section."""

    priority: WeatherPriority
    headline: str
    icon: str
    temperature_c: int
    temperature_f: int
    forecast_day: str
    use_fahrenheit: bool


class WeatherSnapshot(BaseModel):
    """Plain current-conditions display, used when no story fires."""

    temperature_c: int
    temperature_f: int
    high_c: int | None = None
    low_c: int | None = None
    use_fahrenheit: bool
