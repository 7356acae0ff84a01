from dailybrief.schemas.digest import (
    AdSlots,
    DigestContent,
    EmailAd,
    PrimarySection,
    Recipient,
    SatelliteSection,
    Story,
)
from dailybrief.schemas.weather import (
    ForecastData,
    WeatherPriority,
    WeatherSnapshot,
    WeatherStory,
)

__all__ = [
    "Recipient",
    "Story",
    "EmailAd",
    "AdSlots",
    "PrimarySection",
    "SatelliteSection",
    "DigestContent",
    "ForecastData",
    "WeatherPriority",
    "WeatherSnapshot",
    "WeatherStory",
]
