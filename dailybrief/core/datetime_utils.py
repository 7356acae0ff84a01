"""Centralized datetime utilities for consistent timezone handling.

All database timestamps are naive UTC (SQLAlchemy models use naive UTC).
Send records and rate logs are keyed by the UTC calendar date.

Recipient-facing logic (7 AM local delivery, weather day labels, weekday
checks) goes through the per-timezone helpers below. Every helper accepts
an optional ``now`` so callers and tests can pin the clock.

Usage:
    from dailybrief.core.datetime_utils import utc_now, is_target_hour

    if is_target_hour(recipient.timezone, 7):
        send_brief(recipient)

    label = format_forecast_day(date(2026, 1, 17), local_today("America/New_York"))
    # -> "Tomorrow (Sat)" when today is Friday
"""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

# Fixed English names so labels never depend on the process locale
DAY_ABBREVIATIONS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

THURSDAY = 3
FRIDAY = 4
SATURDAY = 5
SUNDAY = 6


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def utc_today(now: datetime | None = None) -> date:
    """Get the UTC calendar date used to key send records and rate logs."""
    return _as_aware_utc(now).date()


def get_cutoff(hours: int = 0, days: int = 0, now: datetime | None = None) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        hours: Hours to subtract from now
        days: Days to subtract from now
        now: Reference time, defaults to the current time

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    delta = timedelta(hours=hours, days=days)
    return to_naive_utc(_as_aware_utc(now)) - delta


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    # Convert to UTC and strip timezone
    return dt.astimezone(UTC).replace(tzinfo=None)


def _as_aware_utc(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(UTC)
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


# =============================================================================
# Per-recipient timezone utilities
# =============================================================================


def is_valid_timezone(tz_name: str | None) -> bool:
    """Check if a timezone name is valid IANA identifier.

    Args:
        tz_name: Timezone string (e.g., "America/New_York")

    Returns:
        True if valid IANA timezone
    """
    if not tz_name:
        return False
    try:
        ZoneInfo(tz_name)
        return True
    except (KeyError, ValueError):
        return False


def user_local_time(timezone: str, now: datetime | None = None) -> datetime:
    """Get current time in a recipient's timezone.

    Args:
        timezone: IANA timezone string (e.g., "America/New_York")
        now: Reference instant, defaults to the current time

    Returns:
        Aware datetime in the recipient's local timezone
    """
    try:
        tz = ZoneInfo(timezone)
    except (KeyError, ValueError):
        # Fallback to UTC for invalid timezone
        tz = ZoneInfo("UTC")

    return _as_aware_utc(now).astimezone(tz)


def local_today(timezone: str, now: datetime | None = None) -> date:
    """Get the calendar date in a recipient's timezone."""
    return user_local_time(timezone, now).date()


def is_target_hour(timezone: str, target_hour: int, now: datetime | None = None) -> bool:
    """Check if the local wall-clock hour in a timezone equals target_hour.

    An invalid timezone never matches, so a bad profile row cannot
    receive the brief at a UTC hour by accident.
    """
    if not is_valid_timezone(timezone):
        return False
    return user_local_time(timezone, now).hour == target_hour


def format_header_date(timezone: str, now: datetime | None = None) -> str:
    """Format the email header date line, e.g. "Monday, January 12, 2026"."""
    local = user_local_time(timezone, now)
    return (
        f"{DAY_NAMES[local.weekday()]}, {MONTH_NAMES[local.month - 1]} "
        f"{local.day}, {local.year}"
    )


# =============================================================================
# Forecast day labels
# =============================================================================


def format_forecast_day(target: date, today: date) -> str:
    """Format a forecast date relative to the recipient's today.

    Editorial rule: never say "Tomorrow" on its own.

    Rules:
        - Same day -> "Today"
        - Next day -> "Tomorrow (Sat)"
        - 2+ days out -> full day name ("Sunday", "Monday", ...)
    """
    diff_days = (target - today).days
    if diff_days == 0:
        return "Today"
    if diff_days == 1:
        return f"Tomorrow ({DAY_ABBREVIATIONS[target.weekday()]})"
    return DAY_NAMES[target.weekday()]


def local_weekday(timezone: str, now: datetime | None = None) -> int:
    """Get the local day-of-week (Mon=0 .. Sun=6) in a timezone."""
    return local_today(timezone, now).weekday()


def is_thursday_or_friday(timezone: str, now: datetime | None = None) -> bool:
    """Check if today is Thursday or Friday in the given timezone."""
    return local_weekday(timezone, now) in (THURSDAY, FRIDAY)


def is_tomorrow_weekday(timezone: str, now: datetime | None = None) -> bool:
    """Check if tomorrow is a weekday (Mon-Fri) in the given timezone."""
    tomorrow = local_today(timezone, now) + timedelta(days=1)
    return tomorrow.weekday() < SATURDAY
