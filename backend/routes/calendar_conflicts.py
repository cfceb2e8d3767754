# routes/calendar_conflicts.py
# Overlap detection for one assignee
#
# Two intervals conflict iff start_a < end_b and end_a > start_b (half-open,
# touching endpoints do not conflict). Only events for the *same* assignee are
# compared: a team assignment never conflicts with its members' own events.
# Events missing start or end are ignored on both sides.

from typing import Iterable, List, Optional, TypeVar

from routes.calendar_time import to_local
from schemas.calendar_schema import ConflictQuery, TeamAssignee, UserAssignee

E = TypeVar("E")


def _same_assignee(query: ConflictQuery, event) -> bool:
    a = query.assignee
    if isinstance(a, UserAssignee):
        return getattr(event, "assigned_to_user_id", None) == a.id
    if isinstance(a, TeamAssignee):
        return getattr(event, "assigned_to_team_id", None) == a.id
    return False


def conflicting_events(
    query: ConflictQuery,
    existing: Iterable[E],
    exclude_id: Optional[str] = None,
) -> List[E]:
    """
    Returns the events in existing that overlap the query interval for the same assignee.

    :param query: candidate interval + assignee (exclude_event_id is honoured too)
    :type query: ConflictQuery
    :param existing: loaded events (ORM rows or CalendarEventOut)
    :type existing: Iterable
    :param exclude_id: event id to skip (the event being edited/moved)
    :type exclude_id: Optional[str]
    :return: overlapping events, in input order
    :rtype: List
    """

    if not query.start_time or not query.end_time:
        return []
    skip = exclude_id or query.exclude_event_id
    new_start, new_end = to_local(query.start_time), to_local(query.end_time)

    hits: List[E] = []
    for e in existing:
        if skip and getattr(e, "id", None) == skip:
            continue
        if not _same_assignee(query, e):
            continue
        st, et = getattr(e, "start_time", None), getattr(e, "end_time", None)
        if not st or not et:
            continue
        if new_start < to_local(et) and new_end > to_local(st):
            hits.append(e)
    return hits


def has_conflict(query: ConflictQuery, existing: Iterable, exclude_id: Optional[str] = None) -> bool:
    return bool(conflicting_events(query, existing, exclude_id))
