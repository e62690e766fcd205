"""Next-delivery date policy shared by every subscription materialization path."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from src.core.config import get_settings


def _as_aware(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def delivery_local_date(now: datetime | None = None, tz_name: str | None = None) -> date:
    """Calendar date of ``now`` in the delivery timezone. Naive values are UTC."""
    tz = ZoneInfo(tz_name or get_settings().delivery_timezone)
    return _as_aware(now).astimezone(tz).date()


def next_delivery_date(
    now: datetime | None = None,
    weekday: int | None = None,
    hour: int | None = None,
    tz_name: str | None = None,
) -> datetime:
    """Return the next delivery slot strictly after ``now``.

    The slot is the configured weekday (0 = Monday) at the configured hour in
    the delivery timezone. If ``now`` is exactly on a slot, the following
    week's slot is returned.

    Args:
        now: Reference time, defaults to the current UTC time. Naive values
            are treated as UTC.
        weekday: Overrides ``settings.delivery_weekday``.
        hour: Overrides ``settings.delivery_hour``.
        tz_name: Overrides ``settings.delivery_timezone``.

    Returns:
        datetime: Timezone-aware datetime in the delivery timezone.
    """
    settings = get_settings()
    weekday = settings.delivery_weekday if weekday is None else weekday
    hour = settings.delivery_hour if hour is None else hour
    tz = ZoneInfo(tz_name or settings.delivery_timezone)

    local_now = _as_aware(now).astimezone(tz)
    days_ahead = (weekday - local_now.weekday()) % 7
    candidate = datetime.combine(
        local_now.date() + timedelta(days=days_ahead), time(hour=hour), tzinfo=tz
    )
    if candidate <= local_now:
        candidate = datetime.combine(
            candidate.date() + timedelta(days=7), time(hour=hour), tzinfo=tz
        )
    return candidate
