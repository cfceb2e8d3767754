# routes/calendar_recurrence.py
# Recurring events: one template + RecurrenceSpec -> concrete drafts

import calendar
from datetime import datetime, timedelta, timezone
from typing import List

from routes.calendar_time import TZ, to_local
from schemas.calendar_schema import CalendarEventCreate, RecurrenceSpec

# hard cap against runaway generation
MAX_OCCURRENCES = 100
DEFAULT_DURATION = timedelta(hours=1)


def _add_months(dt: datetime, months: int) -> datetime:
    # clamp to the last day (Jan 31 + 1 month -> Feb 28/29)
    idx = dt.month - 1 + months
    year, month = dt.year + idx // 12, idx % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _step(base: datetime, spec: RecurrenceSpec, k: int) -> datetime:
    if spec.type == "daily":
        return base + timedelta(days=k * spec.interval)
    if spec.type == "weekly":
        return base + timedelta(days=7 * k * spec.interval)
    return _add_months(base, k * spec.interval)


def occurrence_starts(start: datetime, spec: RecurrenceSpec) -> List[datetime]:
    """
    Start instants of every occurrence, the first one being start itself.

    Steps are taken on Stockholm wall-clock time so a 09:00 meeting stays at 09:00
    across DST changes. Monthly steps are computed from the base each time, so the
    day of month does not drift after a short month. Generation stops once an
    occurrence's calendar day is after spec.end_date, or at MAX_OCCURRENCES.

    :param start: template start (aware)
    :type start: datetime
    :param spec: recurrence rule
    :type spec: RecurrenceSpec
    :return: UTC start instants
    :rtype: List[datetime]
    """

    wall = to_local(start).replace(tzinfo=None)
    out: List[datetime] = []
    k = 0
    while len(out) < MAX_OCCURRENCES:
        cur = _step(wall, spec, k)
        if cur.date() > spec.end_date:
            break
        out.append(cur.replace(tzinfo=TZ).astimezone(timezone.utc))
        k += 1
    return out


def expand_recurrence(base: CalendarEventCreate, spec: RecurrenceSpec) -> List[CalendarEventCreate]:
    """
    Expands a template into occurrence drafts. Each draft keeps the template's
    duration, assignee and relations; the title gets a 1-based counter suffix.

    :param base: template event (start_time required)
    :type base: CalendarEventCreate
    :param spec: recurrence rule
    :type spec: RecurrenceSpec
    :return: drafts in chronological order (empty when end_date is before start)
    :rtype: List[CalendarEventCreate]
    """

    duration = (base.end_time - base.start_time) if base.end_time else DEFAULT_DURATION
    drafts = []
    for i, st in enumerate(occurrence_starts(base.start_time, spec), start=1):
        drafts.append(base.model_copy(update={
            "title": f"{base.title} ({i})",
            "start_time": st,
            "end_time": st + duration,
        }))
    return drafts
