# routes/calendar_state.py
# Session event cache + drag/drop rescheduling
#
# The cache is the "currently loaded" event collection of one session. Conflict
# checks run against it, so they are only as fresh as the last load: a parallel
# session can still double-book in between.

import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from routes.calendar_conflicts import conflicting_events
from routes.calendar_time import at_local_time, parse_hhmm, to_local
from schemas.calendar_schema import (
    ActionResult,
    CalendarEventOut,
    CalendarEventUpdate,
    CalendarFilters,
    ConflictQuery,
    RequestContext,
    assignee_of,
)
from services import calendar_service
from services.calendar_service import StoreError

logger = logging.getLogger(__name__)

# "<org>:<session>" -> loaded events / filters they were loaded with
SESSION_EVENTS: Dict[str, List[CalendarEventOut]] = {}
SESSION_FILTERS: Dict[str, CalendarFilters] = {}
SESSION_CACHE_VERSION: Dict[str, int] = {}

DRAG_CONFLICT_MESSAGE = "Konflikt upptäckt! Det finns redan en händelse på denna tid för den tilldelade personen."


def _key(ctx: RequestContext) -> str:
    return f"{ctx.org_id}:{ctx.session_id}"


def refresh_session_cache(
    db: Session,
    ctx: RequestContext,
    filters: Optional[CalendarFilters] = None,
) -> List[CalendarEventOut]:
    """
    Reloads the session's events from the store. Without filters the last
    filters of the session are reused (or none at all).

    :param db: DB session
    :type db: Session
    :param ctx: request context
    :type ctx: RequestContext
    :param filters: FilterSet to load with
    :type filters: Optional[CalendarFilters]
    :return: the loaded events
    :rtype: List[CalendarEventOut]
    :raises StoreError: store unavailable
    """

    key = _key(ctx)
    if filters is None:
        filters = SESSION_FILTERS.get(key) or CalendarFilters()

    rows = calendar_service.get_list(db, ctx.org_id, filters)
    items = [CalendarEventOut.model_validate(r) for r in rows]

    SESSION_EVENTS[key] = items
    SESSION_FILTERS[key] = filters
    SESSION_CACHE_VERSION[key] = SESSION_CACHE_VERSION.get(key, 0) + 1

    logger.debug(f"Refreshed cache for session {key}: {len(items)} events")
    return items


def get_cached_events(db: Session, ctx: RequestContext, auto_refresh: bool = True) -> List[CalendarEventOut]:
    key = _key(ctx)
    if key not in SESSION_EVENTS and auto_refresh:
        return refresh_session_cache(db, ctx)
    return SESSION_EVENTS.get(key, [])


def invalidate_session_cache(ctx: RequestContext):
    """Drops the session's cache."""
    key = _key(ctx)
    SESSION_EVENTS.pop(key, None)
    SESSION_FILTERS.pop(key, None)
    SESSION_CACHE_VERSION.pop(key, None)
    logger.debug(f"Invalidated cache for session {key}")


def remember_event(ctx: RequestContext, ev: CalendarEventOut):
    # replace in place, or append if new. A session that never loaded stays
    # unloaded so the next lookup pulls the full collection from the store.
    items = SESSION_EVENTS.get(_key(ctx))
    if items is None:
        return
    for i, e in enumerate(items):
        if e.id == ev.id:
            items[i] = ev
            return
    items.append(ev)


def forget_event(ctx: RequestContext, event_id: str):
    key = _key(ctx)
    if key in SESSION_EVENTS:
        SESSION_EVENTS[key] = [e for e in SESSION_EVENTS[key] if e.id != event_id]


def find_conflicts(
    db: Session,
    ctx: RequestContext,
    query: ConflictQuery,
    exclude_id: Optional[str] = None,
) -> List[CalendarEventOut]:
    return conflicting_events(query, get_cached_events(db, ctx), exclude_id)


def reschedule_event(
    db: Session,
    ctx: RequestContext,
    event_id: str,
    target_date: date,
    target_time: Optional[str] = None,
) -> ActionResult:
    """
    Drag/drop move of an event to another day (optionally another time slot).

    1. new start = target day at the original Stockholm time-of-day, or at the slot time
    2. new end = new start + original duration
    3. conflict against the other loaded events of the same assignee -> abort, no override
    4. optimistic update of the cache, then persist
    5. persist failed -> reload the cache from the store and report store_failure

    :param db: DB session
    :type db: Session
    :param ctx: request context
    :type ctx: RequestContext
    :param event_id: dragged event
    :type event_id: str
    :param target_date: day it was dropped on
    :type target_date: date
    :param target_time: 'HH:MM' slot for week/day grids
    :type target_time: Optional[str]
    :return: ok with the moved event, or conflict / store_failure / not_found / validation
    :rtype: ActionResult
    """

    # 1) find the dragged event (cache first, the store as fallback)
    try:
        events = get_cached_events(db, ctx)
        ev = next((e for e in events if e.id == event_id), None)
        if ev is None:
            row = calendar_service.get(db, ctx.org_id, event_id)
            ev = CalendarEventOut.model_validate(row) if row else None
    except StoreError as e:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte flytta händelsen: {e}")

    if ev is None:
        return ActionResult(ok=False, error="not_found", message="Händelsen hittades inte.")
    if not ev.start_time:
        return ActionResult(ok=False, error="validation", message="Händelsen saknar starttid.")

    # 2) new interval
    if target_time:
        hm = parse_hhmm(target_time)
        if not hm:
            return ActionResult(ok=False, error="validation", message="Ogiltig tid.")
    else:
        local = to_local(ev.start_time)
        hm = (local.hour, local.minute)
    new_start = at_local_time(target_date, *hm)
    new_end = new_start + (ev.end_time - ev.start_time) if ev.end_time else None

    # 3) conflict check, hard stop
    query = ConflictQuery(start_time=new_start, end_time=new_end, assignee=assignee_of(ev))
    hits = conflicting_events(query, events, exclude_id=ev.id)
    if hits:
        logger.debug(f"[DRAG] {event_id} blocked by {[h.id for h in hits]}")
        return ActionResult(ok=False, error="conflict", message=DRAG_CONFLICT_MESSAGE, conflicts=hits)

    # 4) optimistic update
    remember_event(ctx, ev.model_copy(update={"start_time": new_start, "end_time": new_end}))

    try:
        row, _ = calendar_service.update(
            db, ctx, event_id, CalendarEventUpdate(start_time=new_start, end_time=new_end)
        )
    except (StoreError, ValueError) as e:
        # 5) compensate: throw the optimistic change away
        logger.error(f"[DRAG] persist failed for {event_id}: {e}")
        try:
            refresh_session_cache(db, ctx)
        except StoreError:
            invalidate_session_cache(ctx)
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte flytta händelsen: {e}")

    moved = CalendarEventOut.model_validate(row)
    remember_event(ctx, moved)
    return ActionResult(ok=True, data=moved)
