from datetime import datetime, timezone, date
from typing import Union


def utcnow() -> datetime:
    """Returns the current time in UTC, timezone aware."""
    return datetime.now(timezone.utc)


def to_german_date(value: Union[datetime, date, str]) -> str:
    """Formats a date as dd.mm.yyyy; ISO strings are parsed first."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value.strftime("%d.%m.%Y")


def days_until(moment: datetime, now: datetime = None) -> int:
    now = now or utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    seconds = (moment - now).total_seconds()
    # Partial days count as a full day
    days = int(seconds // 86400)
    if seconds % 86400:
        days += 1
    return max(0, days)
