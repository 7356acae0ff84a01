"""Editorial weather stories for the Daily Brief.

Turns a 3-day Open-Meteo forecast into at most one short alert. Rules are
checked in priority order and the first one that fires wins:

    1. Safety & extremes (heavy snow, extreme heat), tomorrow before today
    2. Commute & lunch rain (only when tomorrow is a weekday)
    3. Weekend lookahead (Thursday and Friday emails only)
    4. General anomaly against the city's climate normal

When nothing fires the template falls back to the plain current-conditions
widget.
"""

from datetime import date, datetime

from dailybrief.core.datetime_utils import (
    FRIDAY,
    SATURDAY,
    SUNDAY,
    format_forecast_day,
    is_thursday_or_friday,
    is_tomorrow_weekday,
    local_today,
    local_weekday,
)
from dailybrief.core.logging import get_logger
from dailybrief.schemas.weather import ForecastData, WeatherPriority, WeatherStory
from dailybrief.weather.climate_normals import get_climate_normal
from dailybrief.weather.forecast import (
    FAHRENHEIT_COUNTRIES,
    ForecastClient,
    celsius_to_fahrenheit,
    round_half_up,
    should_use_fahrenheit,
)

logger = get_logger(__name__)

# Thresholds
HEAVY_SNOW_CM = 10
EXTREME_HEAT_C = 35
WET_DAY_MM = 5
DRY_DAY_MM = 1
WARM_WEEKEND_DELTA_C = 2
ANOMALY_DELTA_C = 5

# (start hour, end hour inclusive, probability threshold %)
MORNING_WINDOW = (8, 10, 60)
LUNCH_WINDOW = (12, 14, 50)
EVENING_WINDOW = (17, 19, 60)


def format_temp(temp_c: float, use_fahrenheit: bool) -> str:
    if use_fahrenheit:
        return f"{celsius_to_fahrenheit(temp_c)}°F"
    return f"{round_half_up(temp_c)}°C"


def format_delta(delta_c: float, use_fahrenheit: bool) -> str:
    """Temperature difference (no +32 offset when converting)."""
    if use_fahrenheit:
        return f"{round_half_up(abs(delta_c) * 9 / 5)}°F"
    return f"{round_half_up(abs(delta_c))}°C"


def format_snow(snowfall_cm: float, use_fahrenheit: bool) -> str:
    if use_fahrenheit:
        return f'{round_half_up(snowfall_cm / 2.54)}"'
    return f"{round_half_up(snowfall_cm)}cm"


def _value(values: list[float | None], index: int) -> float | None:
    if 0 <= index < len(values):
        return values[index]
    return None


def _parse_day(value: str) -> date:
    return date.fromisoformat(value[:10])


def average_for_range(hourly: dict[int, float], start_hour: int, end_hour: int) -> float:
    """Average precipitation probability over [start_hour, end_hour], 0 if no data."""
    values = [hourly[h] for h in range(start_hour, end_hour + 1) if h in hourly]
    if not values:
        return 0.0
    return sum(values) / len(values)


class WeatherStoryEngine:
    """Picks the single most important weather story for a neighborhood."""

    def __init__(
        self,
        forecast_client: ForecastClient,
        fahrenheit_countries: frozenset[str] | set[str] = FAHRENHEIT_COUNTRIES,
    ) -> None:
        self.forecast_client = forecast_client
        self.fahrenheit_countries = fahrenheit_countries

    def use_fahrenheit(self, country: str | None) -> bool:
        return should_use_fahrenheit(country, self.fahrenheit_countries)

    async def generate(
        self,
        latitude: float,
        longitude: float,
        timezone: str,
        city_name: str,
        country: str = "USA",
        now: datetime | None = None,
    ) -> WeatherStory | None:
        """Fetch the forecast and evaluate it. None on fetch failure or no story."""
        forecast = await self.forecast_client.fetch(latitude, longitude, timezone)
        if forecast is None:
            return None
        return self.evaluate(
            forecast,
            timezone=timezone,
            city_name=city_name,
            use_fahrenheit=self.use_fahrenheit(country),
            now=now,
        )

    def evaluate(
        self,
        forecast: ForecastData,
        timezone: str,
        city_name: str,
        use_fahrenheit: bool,
        now: datetime | None = None,
    ) -> WeatherStory | None:
        """Run the rules in priority order against an already fetched forecast."""
        today = local_today(timezone, now)
        checks = (
            lambda: self._check_safety(forecast, today, use_fahrenheit),
            lambda: self._check_commute(forecast, timezone, today, use_fahrenheit, now),
            lambda: self._check_weekend(
                forecast, timezone, today, city_name, use_fahrenheit, now
            ),
            lambda: self._check_anomaly(forecast, today, city_name, use_fahrenheit),
        )
        for check in checks:
            story = check()
            if story is not None:
                logger.bind(
                    city=city_name,
                    priority=int(story.priority),
                    icon=story.icon,
                ).debug("weather_story_selected")
                return story
        return None

    def _story(
        self,
        priority: WeatherPriority,
        headline: str,
        icon: str,
        forecast: ForecastData,
        day_label: str,
        use_fahrenheit: bool,
    ) -> WeatherStory:
        current = forecast.current.temperature_2m if forecast.current else None
        current_c = round_half_up(current or 0)
        return WeatherStory(
            priority=priority,
            headline=headline,
            icon=icon,
            temperature_c=current_c,
            temperature_f=celsius_to_fahrenheit(current_c),
            forecast_day=day_label,
            use_fahrenheit=use_fahrenheit,
        )

    def _check_safety(
        self, forecast: ForecastData, today: date, use_f: bool
    ) -> WeatherStory | None:
        daily = forecast.daily
        for index in (1, 0):
            if index >= len(daily.time):
                continue

            snowfall = _value(daily.snowfall_sum, index) or 0
            max_temp = _value(daily.temperature_2m_max, index) or 0
            label = format_forecast_day(_parse_day(daily.time[index]), today)

            if snowfall > HEAVY_SNOW_CM:
                return self._story(
                    WeatherPriority.SAFETY,
                    f"Heavy Snow {label}: {format_snow(snowfall, use_f)} forecast. "
                    "Check transit updates.",
                    "snow",
                    forecast,
                    label,
                    use_f,
                )

            if max_temp > EXTREME_HEAT_C:
                return self._story(
                    WeatherPriority.SAFETY,
                    f"Heat Advisory {label}: {format_temp(max_temp, use_f)}. Stay hydrated.",
                    "thermometer-up",
                    forecast,
                    label,
                    use_f,
                )
        return None

    def _check_commute(
        self,
        forecast: ForecastData,
        timezone: str,
        today: date,
        use_f: bool,
        now: datetime | None,
    ) -> WeatherStory | None:
        if not is_tomorrow_weekday(timezone, now):
            return None
        if len(forecast.daily.time) < 2:
            return None

        tomorrow = forecast.daily.time[1]
        hourly = forecast.hourly
        tomorrow_hours: dict[int, float] = {}
        for stamp, probability in zip(
            hourly.time, hourly.precipitation_probability, strict=False
        ):
            if stamp.startswith(tomorrow) and probability is not None:
                tomorrow_hours[int(stamp[11:13])] = probability

        label = format_forecast_day(_parse_day(tomorrow), today)

        windows = (
            (MORNING_WINDOW, "Rain {label} 8-10 AM ({pct}%). Bring an umbrella."),
            (LUNCH_WINDOW, "Rain {label} over lunch ({pct}%). Order in."),
            (EVENING_WINDOW, "Rain {label} 5-7 PM ({pct}%). Plan accordingly."),
        )
        for (start, end, threshold), template in windows:
            avg = average_for_range(tomorrow_hours, start, end)
            if avg > threshold:
                return self._story(
                    WeatherPriority.COMMUTE,
                    template.format(label=label, pct=round_half_up(avg)),
                    "rain",
                    forecast,
                    label,
                    use_f,
                )
        return None

    def _check_weekend(
        self,
        forecast: ForecastData,
        timezone: str,
        today: date,
        city_name: str,
        use_f: bool,
        now: datetime | None,
    ) -> WeatherStory | None:
        if not is_thursday_or_friday(timezone, now):
            return None

        daily = forecast.daily
        days = [_parse_day(t) for t in daily.time]
        sat_index = next((i for i, d in enumerate(days) if d.weekday() == SATURDAY), None)
        if sat_index is None:
            return None

        sun_index = None
        if local_weekday(timezone, now) == FRIDAY:
            sun_index = next((i for i, d in enumerate(days) if d.weekday() == SUNDAY), None)

        sat_max = _value(daily.temperature_2m_max, sat_index) or 0
        sat_precip = _value(daily.precipitation_sum, sat_index) or 0
        sat_label = format_forecast_day(days[sat_index], today)

        if sat_precip > WET_DAY_MM:
            headline = f"Rain {sat_label}. Plan indoor activities."
            if sun_index is not None:
                sun_precip = _value(daily.precipitation_sum, sun_index) or 0
                if sun_precip > WET_DAY_MM:
                    headline = "Wet weekend ahead. Rain both days."
            return self._story(
                WeatherPriority.WEEKEND, headline, "rain", forecast, sat_label, use_f
            )

        normal = get_climate_normal(city_name, days[sat_index].month)
        warm = normal is not None and sat_max > normal + WARM_WEEKEND_DELTA_C
        if warm and sat_precip < DRY_DAY_MM:
            return self._story(
                WeatherPriority.WEEKEND,
                f"{sat_label}: {format_temp(sat_max, use_f)} and dry. Warmer than usual.",
                "sun",
                forecast,
                sat_label,
                use_f,
            )
        return None

    def _check_anomaly(
        self, forecast: ForecastData, today: date, city_name: str, use_f: bool
    ) -> WeatherStory | None:
        daily = forecast.daily
        if len(daily.time) < 2:
            return None

        tomorrow_max = _value(daily.temperature_2m_max, 1)
        if tomorrow_max is None:
            return None

        tomorrow = _parse_day(daily.time[1])
        normal = get_climate_normal(city_name, tomorrow.month)
        if normal is None:
            return None

        delta = tomorrow_max - normal
        label = format_forecast_day(tomorrow, today)
        temp = format_temp(tomorrow_max, use_f)
        delta_display = format_delta(delta, use_f)

        if delta > ANOMALY_DELTA_C:
            return self._story(
                WeatherPriority.ANOMALY,
                f"Unseasonably Warm {label}: {temp}, {delta_display} above average.",
                "thermometer-up",
                forecast,
                label,
                use_f,
            )
        if delta < -ANOMALY_DELTA_C:
            return self._story(
                WeatherPriority.ANOMALY,
                f"Sharp Drop {label}: {temp}, {delta_display} below average.",
                "thermometer-down",
                forecast,
                label,
                use_f,
            )
        return None
