from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Tuple
from zoneinfo import ZoneInfo

# All timestamps are stored as naive UTC datetimes.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_date(moment: datetime, tz_name: str) -> date:
    """Calendar date of a naive UTC timestamp in the given timezone"""
    aware = moment.replace(tzinfo=timezone.utc)
    return aware.astimezone(ZoneInfo(tz_name)).date()


def day_bounds(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """Naive UTC [start, end) of a local calendar day"""
    zone = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )
