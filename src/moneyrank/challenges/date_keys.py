"""Calendar date-key utilities.

A date key is a 'YYYY-MM-DD' string naming a day in the player's local
timezone. Clients send their local today; the server falls back to the
reset timezone when they don't.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from moneyrank.errors import ValidationError

DATE_KEY_FORMAT = "%Y-%m-%d"


def parse_date_key(date_key: str) -> date:
    """Parse a date key, raising ValidationError if malformed."""
    try:
        return datetime.strptime(date_key, DATE_KEY_FORMAT).date()
    except (TypeError, ValueError):
        msg = f"Invalid date key '{date_key}', expected YYYY-MM-DD"
        raise ValidationError(msg) from None


def to_date_key(d: date) -> str:
    return d.strftime(DATE_KEY_FORMAT)


def get_active_date_key(reset_tz: str, now: datetime | None = None) -> str:
    """Today's date key in the reset timezone."""
    if now is None:
        now = datetime.now(timezone.utc)
    return to_date_key(now.astimezone(ZoneInfo(reset_tz)).date())


def shift_date_key(date_key: str, days: int) -> str:
    """Date key `days` days after (or before, if negative) date_key."""
    return to_date_key(parse_date_key(date_key) + timedelta(days=days))


def days_between(earlier: str, later: str) -> int:
    """Whole days from earlier to later (negative if later is before earlier)."""
    return (parse_date_key(later) - parse_date_key(earlier)).days


def resolve_user_today(user_today: str | None, reset_tz: str) -> str:
    """The player's local today: their own date key if sent, else the server's."""
    if user_today:
        parse_date_key(user_today)
        return user_today
    return get_active_date_key(reset_tz)
