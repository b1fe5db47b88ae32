"""Local-time helpers shared by discovery, planning and scheduling."""

from datetime import UTC, date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


def local_timezone(offset_hours: float) -> timezone:
    """Fixed-offset timezone for the outing city."""
    return timezone(timedelta(hours=offset_hours))


def parse_hhmm(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight."""
    hours, minutes = value.strip().split(":")
    return int(hours) * 60 + int(minutes)


def format_hhmm(total_minutes: int) -> str:
    """Format minutes since midnight as "HH:MM" (wraps at 24h)."""
    total_minutes %= 24 * 60
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def combine_local(day: date, hhmm: str, tz: timezone) -> datetime:
    """Build an aware datetime from a local date and "HH:MM" (24:00 rolls over)."""
    minutes = parse_hhmm(hhmm)
    return datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(minutes=minutes)


def to_local_hhmm(moment: datetime, tz: timezone) -> str:
    """Render an aware datetime as local "HH:MM"."""
    return moment.astimezone(tz).strftime("%H:%M")


def resolve_end_date(start: date, days: int = 3) -> date:
    """End of a discovery date range."""
    return start + timedelta(days=days)


def ensure_aware(moment: datetime, tz: timezone) -> datetime:
    """Attach the local timezone to naive datetimes."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment
