# routes/calendar_time.py
# Dates / grids / Swedish formatting
#
# Persisted timestamps are UTC instants. Everything the user sees (day boundaries,
# week numbers, time-of-day) is evaluated in Europe/Stockholm.

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple, TypeVar, Union
from zoneinfo import ZoneInfo

from config import CALENDAR_TZ

TZ = ZoneInfo(CALENDAR_TZ)

SWEDISH_MONTHS = [
    "Januari", "Februari", "Mars", "April", "Maj", "Juni",
    "Juli", "Augusti", "September", "Oktober", "November", "December",
]
SWEDISH_DAYS_SHORT = ["Mån", "Tis", "Ons", "Tor", "Fre", "Lör", "Sön"]
SWEDISH_DAYS_LONG = ["Måndag", "Tisdag", "Onsdag", "Torsdag", "Fredag", "Lördag", "Söndag"]

EVENT_TYPE_LABELS = {
    "meeting": "Möte",
    "task": "Uppgift",
    "reminder": "Påminnelse",
}

HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
AGENDA_DAYS = 30

E = TypeVar("E")
DateLike = Union[date, datetime]


def to_local(dt: datetime) -> datetime:
    """
    Converts an instant to Stockholm wall-clock time. Naive values are taken as UTC.

    :param dt: instant
    :type dt: datetime
    :return: aware datetime in the display timezone
    :rtype: datetime
    """

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(TZ)


def local_date(d: DateLike) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(d, datetime):
        return to_local(d).date()
    return d


def at_local_time(d: date, hour: int = 0, minute: int = 0) -> datetime:
    """
    Builds the UTC instant for a Stockholm calendar day at the given wall-clock time.

    :param d: calendar day
    :type d: date
    :param hour: hour (0-23)
    :type hour: int
    :param minute: minute (0-59)
    :type minute: int
    :return: aware UTC datetime
    :rtype: datetime
    """

    return datetime.combine(d, time(hour, minute), tzinfo=TZ).astimezone(timezone.utc)


def parse_hhmm(s: str) -> Optional[Tuple[int, int]]:
    """
    Parses 'HH:MM' into (hour, minute).

    :param s: time string
    :type s: str
    :return: (hour, minute) or None
    :rtype: Optional[Tuple[int, int]]
    """

    m = HHMM_RE.match((s or "").strip())
    return (int(m.group(1)), int(m.group(2))) if m else None


def week_number(d: DateLike) -> int:
    """
    ISO-8601 week number (the week belongs to the year holding its Thursday).
    2024-01-01 -> 1, 2023-12-31 -> 52.

    :param d: date or instant
    :type d: DateLike
    :return: week number 1..53
    :rtype: int
    """

    return local_date(d).isocalendar()[1]


def month_grid(year: int, month: int) -> List[date]:
    """
    Fixed 6x7 Monday-first grid for a month view. The grid starts with trailing days
    of the previous month and is padded with leading days of the next month.

    :param year: year
    :type year: int
    :param month: month 1..12
    :type month: int
    :return: 42 dates
    :rtype: List[date]
    """

    first = date(year, month, 1)
    start = first - timedelta(days=first.weekday())
    return [start + timedelta(days=i) for i in range(42)]


def week_days(anchor: DateLike) -> List[date]:
    """
    Monday..Sunday of the week containing anchor.
    """

    d = local_date(anchor)
    monday = d - timedelta(days=d.weekday())
    return [monday + timedelta(days=i) for i in range(7)]


def time_slots() -> List[str]:
    return [f"{h:02d}:{m:02d}" for h in range(24) for m in (0, 30)]


def is_same_day(a: DateLike, b: DateLike) -> bool:
    return local_date(a) == local_date(b)


def is_same_month(a: DateLike, b: DateLike) -> bool:
    da, db = local_date(a), local_date(b)
    return (da.year, da.month) == (db.year, db.month)


def is_today(d: DateLike, now: Optional[datetime] = None) -> bool:
    return is_same_day(d, now or datetime.now(timezone.utc))


def format_swedish_date(dt: datetime) -> str:
    """
    e.g. "måndag 4 mars 2024"
    """

    lt = to_local(dt)
    return f"{SWEDISH_DAYS_LONG[lt.weekday()].lower()} {lt.day} {SWEDISH_MONTHS[lt.month - 1].lower()} {lt.year}"


def format_swedish_time(dt: datetime) -> str:
    return to_local(dt).strftime("%H:%M")


def format_swedish_datetime(dt: datetime) -> str:
    """
    e.g. "mån 4 mars 10:00"
    """

    lt = to_local(dt)
    return (
        f"{SWEDISH_DAYS_SHORT[lt.weekday()].lower()} {lt.day} "
        f"{SWEDISH_MONTHS[lt.month - 1].lower()} {lt.strftime('%H:%M')}"
    )


def view_range(mode: str, anchor: date, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Query window for a calendar view, as UTC instants.

    - month: first day 00:00 .. last day 23:59:59
    - week: Monday 00:00 .. Sunday 23:59:59.999999
    - day: 00:00 .. 23:59:59
    - agenda: now .. now + 30 days

    :param mode: month | week | day | agenda
    :type mode: str
    :param anchor: day the view is positioned on
    :type anchor: date
    :param now: current instant (agenda only)
    :type now: Optional[datetime]
    :return: (date_from, date_to)
    :rtype: Tuple[datetime, datetime]
    :raises ValueError: unknown mode
    """

    if mode == "month":
        first = anchor.replace(day=1)
        next_first = (first + timedelta(days=32)).replace(day=1)
        return at_local_time(first), at_local_time(next_first) - timedelta(seconds=1)
    if mode == "week":
        days = week_days(anchor)
        return at_local_time(days[0]), at_local_time(days[6] + timedelta(days=1)) - timedelta(microseconds=1)
    if mode == "day":
        return at_local_time(anchor), at_local_time(anchor + timedelta(days=1)) - timedelta(seconds=1)
    if mode == "agenda":
        start = now or datetime.now(timezone.utc)
        return start, start + timedelta(days=AGENDA_DAYS)
    raise ValueError(f"unknown view mode: {mode}")


def events_for_day(events: Iterable[E], d: date) -> List[E]:
    # undated events never land in a day cell
    return [e for e in events if getattr(e, "start_time", None) and is_same_day(e.start_time, d)]


def events_for_week(events: Iterable[E], week_start: date) -> List[E]:
    last = week_start + timedelta(days=6)
    out = []
    for e in events:
        st = getattr(e, "start_time", None)
        if st and week_start <= local_date(st) <= last:
            out.append(e)
    return out
