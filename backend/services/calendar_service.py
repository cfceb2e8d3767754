# services/calendar_service.py
import logging
from contextlib import contextmanager
from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from typing import Any, Dict, List, Optional, Tuple

from models.calendar import CalendarEvent
from schemas.calendar_schema import (
    CalendarEventCreate,
    CalendarEventUpdate,
    CalendarFilters,
    RequestContext,
    assignee_columns,
)
from services.team_service import get_active_member_ids

logger = logging.getLogger(__name__)

_EVENT_FIELDS = (
    "title", "type", "start_time", "end_time",
    "related_lead_id", "related_job_id", "related_order_id",
    "description", "location",
)


class StoreError(Exception):
    """Persistence failure (network/backend/constraint), already rolled back."""


@contextmanager
def _store_call(db: Session, what: str):
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[calendar] {what} failed: {e}")
        raise StoreError(str(e)) from e


def _row(org_id: str, payload: CalendarEventCreate) -> CalendarEvent:
    data = {k: getattr(payload, k) for k in _EVENT_FIELDS}
    data.update(assignee_columns(payload.assignee))
    return CalendarEvent(organisation_id=org_id, **data)

def _snapshot(ev: CalendarEvent) -> Dict[str, Any]:
    return {
        "title": ev.title,
        "start_time": ev.start_time,
        "end_time": ev.end_time,
        "assigned_to_user_id": ev.assigned_to_user_id,
        "assigned_to_team_id": ev.assigned_to_team_id,
    }

def get_list(db: Session, org_id: str, filters: Optional[CalendarFilters] = None) -> List[CalendarEvent]:
    """
    FilterSet -> store query, ordered by start_time (undated events last).

    Team ids are resolved to their active members first; the assignee restriction
    becomes "user in (selected users + members) OR team in (selected teams)".
    No users and no teams means no assignee restriction at all.
    """
    f = filters or CalendarFilters()
    with _store_call(db, "list"):
        query = db.query(CalendarEvent).filter(CalendarEvent.organisation_id == org_id)

        if f.type and f.type != "all":
            query = query.filter(CalendarEvent.type == f.type)

        if f.assigned_to and f.assigned_to != "all":
            if f.assigned_to == "unassigned":
                query = query.filter(CalendarEvent.assigned_to_user_id.is_(None))
            else:
                query = query.filter(CalendarEvent.assigned_to_user_id == f.assigned_to)

        user_ids = set(f.user_ids)
        if f.team_ids:
            user_ids |= get_active_member_ids(db, org_id, f.team_ids)

        clauses = []
        if user_ids:
            clauses.append(CalendarEvent.assigned_to_user_id.in_(sorted(user_ids)))
        if f.team_ids:
            clauses.append(CalendarEvent.assigned_to_team_id.in_(f.team_ids))
        if clauses:
            query = query.filter(or_(*clauses))

        if f.date_from: query = query.filter(CalendarEvent.start_time >= f.date_from)
        if f.date_to:   query = query.filter(CalendarEvent.start_time <= f.date_to)

        return (
            query.order_by(CalendarEvent.start_time.is_(None), CalendarEvent.start_time.asc())
            .all()
        )

def get(db: Session, org_id: str, event_id: str) -> Optional[CalendarEvent]:
    with _store_call(db, "get"):
        return (
            db.query(CalendarEvent)
            .filter(CalendarEvent.organisation_id == org_id, CalendarEvent.id == event_id)
            .first()
        )

def create(db: Session, ctx: RequestContext, payload: CalendarEventCreate) -> CalendarEvent:
    ev = _row(ctx.org_id, payload)
    with _store_call(db, "create"):
        db.add(ev); db.commit(); db.refresh(ev)
    logger.info(f"[calendar] created {ev.id} in org {ctx.org_id}")
    return ev

def create_many(db: Session, ctx: RequestContext, drafts: List[CalendarEventCreate]) -> List[CalendarEvent]:
    # one transaction: either every occurrence is stored or none
    if not drafts: return []
    rows = [_row(ctx.org_id, d) for d in drafts]
    with _store_call(db, "create_many"):
        db.add_all(rows); db.commit()
        for ev in rows:
            db.refresh(ev)
    logger.info(f"[calendar] created {len(rows)} occurrences in org {ctx.org_id}")
    return rows

def update(
    db: Session,
    ctx: RequestContext,
    event_id: str,
    patch: CalendarEventUpdate,
) -> Tuple[CalendarEvent, Dict[str, Any]]:
    """
    Applies a partial update and returns (event, before) where before is a
    snapshot of the assignment/time fields prior to the change.

    :raises ValueError: NOT_FOUND, MISSING_START, INVALID_INTERVAL
    :raises StoreError: persistence failure
    """
    ev = get(db, ctx.org_id, event_id)
    if not ev: raise ValueError("NOT_FOUND")

    data = patch.model_dump(exclude_unset=True, include=set(_EVENT_FIELDS))
    if "assignee" in patch.model_fields_set and patch.assignee is not None:
        data.update(assignee_columns(patch.assignee))
    if "start_time" in data and data["start_time"] is None:
        raise ValueError("MISSING_START")
    # explicit null on a NOT NULL column means "leave as is"
    for k in ("title", "type"):
        if k in data and not data[k]:
            data.pop(k)

    start = data.get("start_time", ev.start_time)
    end = data.get("end_time", ev.end_time)
    if start and end and end <= start:
        raise ValueError("INVALID_INTERVAL")

    before = _snapshot(ev)
    with _store_call(db, "update"):
        for k, v in data.items():
            setattr(ev, k, v)
        db.commit(); db.refresh(ev)
    logger.info(f"[calendar] updated {ev.id} fields={sorted(data)}")
    return ev, before

def delete(db: Session, ctx: RequestContext, event_id: str) -> None:
    ev = get(db, ctx.org_id, event_id)
    if not ev: raise ValueError("NOT_FOUND")
    with _store_call(db, "delete"):
        db.delete(ev); db.commit()
    logger.info(f"[calendar] deleted {event_id}")
