from dailybrief.weather.climate_normals import CLIMATE_NORMALS, get_climate_normal
from dailybrief.weather.forecast import (
    ForecastClient,
    current_conditions,
    should_use_fahrenheit,
)
from dailybrief.weather.story import WeatherStoryEngine

__all__ = [
    "CLIMATE_NORMALS",
    "ForecastClient",
    "WeatherStoryEngine",
    "current_conditions",
    "get_climate_normal",
    "should_use_fahrenheit",
]
