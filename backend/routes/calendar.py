# Calendar router. Request context (org/user/role) comes from headers and is passed
# explicitly to every handler; nothing is read from ambient state.
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from database import get_db
from routes.calendar_permissions import (
    can_create_event_for,
    can_view_calendar,
    capability_for,
    describe,
)
from routes.calendar_recurrence import expand_recurrence
from routes.calendar_state import (
    find_conflicts,
    forget_event,
    refresh_session_cache,
    remember_event,
    reschedule_event,
)
from routes.calendar_time import (
    SWEDISH_MONTHS,
    local_date,
    month_grid,
    time_slots,
    view_range,
    week_days,
    week_number,
)
from schemas.calendar_schema import (
    ActionResult,
    CalendarEventOut,
    CalendarFilters,
    ConflictOut,
    ConflictQuery,
    EventCreateRequest,
    EventUpdateRequest,
    NotificationRecord,
    PermissionsOut,
    RequestContext,
    RescheduleRequest,
    TeamAssignee,
    Unassigned,
    UserSummary,
    assignee_of,
)
from services import calendar_service, team_service
from services.calendar_service import StoreError
from services.notification_service import (
    NotificationDispatcher,
    get_notifier,
    notifications_for_created,
    notifications_for_updated,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/calendar", tags=["calendar"])

ROLES = ("admin", "sales", "worker")

# ValueError codes from the service -> user-facing messages
VALIDATION_MESSAGES = {
    "MISSING_START": "Starttid är obligatorisk.",
    "INVALID_INTERVAL": "Sluttid måste vara efter starttid.",
}
CONFLICT_MESSAGE = "Det finns en konflikt med en annan händelse. Vill du fortsätta ändå?"
TEAM_CONFLICT_MESSAGE = "Det finns en team-konflikt med en annan händelse. Vill du fortsätta ändå?"
FORBIDDEN_CREATE = "Du har inte behörighet att skapa händelser för denna mottagare."
FORBIDDEN_VIEW = "Du har inte behörighet att visa denna kalender."
FORBIDDEN_EDIT = "Du har inte behörighet att ändra denna händelse."


# Helpers
def get_request_context(
    x_org_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_session_id: Optional[str] = Header(None),
) -> RequestContext:
    """
    Builds the RequestContext from X-Org-Id / X-User-Id / X-User-Role / X-Session-Id.

    :raises HTTPException: 401 - org or user missing, 422 - unknown role
    """
    if not x_org_id or not x_user_id:
        raise HTTPException(status_code=401, detail="Inloggning krävs.")
    if x_user_role not in ROLES:
        raise HTTPException(status_code=422, detail=f"Okänd roll: {x_user_role}")
    return RequestContext(
        org_id=x_org_id,
        user_id=x_user_id,
        role=x_user_role,
        session_id=x_session_id or x_user_id,
    )


def _today() -> date:
    return local_date(datetime.now(timezone.utc))


def _raise_value_error(e: ValueError):
    code = str(e)
    if code == "NOT_FOUND":
        raise HTTPException(status_code=404, detail="Händelsen hittades inte.")
    raise HTTPException(status_code=422, detail=VALIDATION_MESSAGES.get(code, code))


def _require_edit_access(ctx: RequestContext, row):
    # authoring rights on the event's current assignee
    if not can_create_event_for(ctx, assignee_of(row)):
        raise HTTPException(status_code=403, detail=FORBIDDEN_EDIT)


def _conflict_result(query: ConflictQuery, hits: List[CalendarEventOut]) -> ActionResult:
    msg = TEAM_CONFLICT_MESSAGE if isinstance(query.assignee, TeamAssignee) else CONFLICT_MESSAGE
    return ActionResult(ok=False, error="conflict", need_confirm=True, message=msg, conflicts=hits)


def _dispatch(background: BackgroundTasks, notifier: NotificationDispatcher, records: List[NotificationRecord]):
    # runs after the response has been sent
    for rec in records:
        background.add_task(notifier.send, rec)


# Handlers (create / update)
def handle_create_event(
    db: Session,
    ctx: RequestContext,
    req: EventCreateRequest,
) -> Tuple[ActionResult, List[NotificationRecord]]:
    """
    Creates one event, or a recurring series when req.recurrence is given.

    - first call with a conflict (confirmed=False): need_confirm + the conflicting events
    - confirmed=True: stores regardless of the conflict

    :param db: DB session
    :type db: Session
    :param ctx: request context
    :type ctx: RequestContext
    :param req: event + confirmed/recurrence
    :type req: EventCreateRequest
    :return: (result, notifications to send)
    :rtype: Tuple[ActionResult, List[NotificationRecord]]
    :raises HTTPException: 403 - not allowed for this assignee, 422 - empty series
    """

    # 1) permission gate
    if not can_create_event_for(ctx, req.assignee):
        raise HTTPException(status_code=403, detail=FORBIDDEN_CREATE)

    # 2) conflict warning (overridable)
    query = ConflictQuery(start_time=req.start_time, end_time=req.end_time, assignee=req.assignee)
    if not isinstance(req.assignee, Unassigned) and not req.confirmed:
        try:
            hits = find_conflicts(db, ctx, query)
        except StoreError as ex:
            return ActionResult(ok=False, error="store_failure", message=f"Kunde inte spara händelse: {ex}"), []
        if hits:
            return _conflict_result(query, hits), []

    # 3) recurring series: one all-or-nothing batch
    if req.recurrence:
        drafts = expand_recurrence(req, req.recurrence)
        if not drafts:
            raise HTTPException(status_code=422, detail="Slutdatum för upprepning måste vara efter startdatum.")
        try:
            rows = calendar_service.create_many(db, ctx, drafts)
        except StoreError as ex:
            return ActionResult(ok=False, error="store_failure", message=f"Kunde inte spara händelse: {ex}"), []
        created = [CalendarEventOut.model_validate(r) for r in rows]
        for ev in created:
            remember_event(ctx, ev)
        # one notification for the whole series
        return ActionResult(ok=True, data=created), notifications_for_created(created[0])

    # 4) single event
    try:
        row = calendar_service.create(db, ctx, req)
    except StoreError as ex:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte spara händelse: {ex}"), []
    ev = CalendarEventOut.model_validate(row)
    remember_event(ctx, ev)
    return ActionResult(ok=True, data=ev), notifications_for_created(ev)


def handle_update_event(
    db: Session,
    ctx: RequestContext,
    event_id: str,
    req: EventUpdateRequest,
) -> Tuple[ActionResult, List[NotificationRecord]]:
    """
    Edits an event. The conflict check uses the merged (current + patch) interval and
    assignee and skips the event itself.

    :raises HTTPException: 404 - unknown event, 403 - current or new assignee not allowed, 422 - invalid interval
    """

    try:
        current = calendar_service.get(db, ctx.org_id, event_id)
    except StoreError as ex:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte spara händelse: {ex}"), []
    if not current:
        raise HTTPException(status_code=404, detail="Händelsen hittades inte.")
    _require_edit_access(ctx, current)

    fields = req.model_fields_set
    if "assignee" in fields and req.assignee is not None:
        if not can_create_event_for(ctx, req.assignee):
            raise HTTPException(status_code=403, detail=FORBIDDEN_CREATE)
        assignee = req.assignee
    else:
        assignee = assignee_of(current)

    start = req.start_time if "start_time" in fields else current.start_time
    end = req.end_time if "end_time" in fields else current.end_time
    if not start:
        raise HTTPException(status_code=422, detail=VALIDATION_MESSAGES["MISSING_START"])
    if end and end <= start:
        raise HTTPException(status_code=422, detail=VALIDATION_MESSAGES["INVALID_INTERVAL"])

    query = ConflictQuery(start_time=start, end_time=end, assignee=assignee)
    if not isinstance(assignee, Unassigned) and not req.confirmed:
        try:
            hits = find_conflicts(db, ctx, query, exclude_id=event_id)
        except StoreError as ex:
            return ActionResult(ok=False, error="store_failure", message=f"Kunde inte spara händelse: {ex}"), []
        if hits:
            return _conflict_result(query, hits), []

    try:
        row, before = calendar_service.update(db, ctx, event_id, req)
    except ValueError as ex:
        _raise_value_error(ex)
    except StoreError as ex:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte spara händelse: {ex}"), []

    ev = CalendarEventOut.model_validate(row)
    remember_event(ctx, ev)
    return ActionResult(ok=True, data=ev), notifications_for_updated(before, row)


# Endpoints
@router.get("/events", response_model=List[CalendarEventOut])
def list_events(
    type: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    user_ids: List[str] = Query([], alias="userIds"),
    team_ids: List[str] = Query([], alias="teamIds"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    view: Optional[str] = Query(None, pattern="^(month|week|day|agenda)$"),
    anchor: Optional[date] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Lists events and makes them the session's loaded collection.
    With view (+anchor) and no explicit dates the window of that view is used.
    """
    if view and not (date_from or date_to):
        date_from, date_to = view_range(view, anchor or _today())

    filters = CalendarFilters(
        type=type,
        assigned_to=assigned_to,
        user_ids=user_ids,
        team_ids=team_ids,
        date_from=date_from,
        date_to=date_to,
    )

    targets = list(filters.user_ids)
    if filters.assigned_to and filters.assigned_to not in ("all", "unassigned"):
        targets.append(filters.assigned_to)
    membership = team_service.viewer_membership(db, ctx)
    if not (targets or filters.team_ids):
        # nobody selected: narrow to what the role may see
        default = capability_for(ctx.role).default_selection(ctx, membership)
        if default:
            filters.user_ids, filters.team_ids = default
    else:
        for uid in targets:
            if not can_view_calendar(ctx, membership, target_user_id=uid):
                raise HTTPException(status_code=403, detail=FORBIDDEN_VIEW)
        for tid in filters.team_ids:
            if not can_view_calendar(ctx, membership, target_team_id=tid):
                raise HTTPException(status_code=403, detail=FORBIDDEN_VIEW)

    try:
        return refresh_session_cache(db, ctx, filters)
    except StoreError:
        raise HTTPException(status_code=502, detail="Kunde inte ladda kalenderdata")


@router.get("/events/{event_id}", response_model=CalendarEventOut)
def get_event(
    event_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    try:
        row = calendar_service.get(db, ctx.org_id, event_id)
    except StoreError:
        raise HTTPException(status_code=502, detail="Kunde inte ladda kalenderdata")
    if not row:
        raise HTTPException(status_code=404, detail="Händelsen hittades inte.")
    membership = team_service.viewer_membership(db, ctx)
    if not can_view_calendar(
        ctx, membership, target_user_id=row.assigned_to_user_id, target_team_id=row.assigned_to_team_id
    ):
        raise HTTPException(status_code=403, detail=FORBIDDEN_VIEW)
    return row


@router.post("/events", response_model=ActionResult)
def create_event(
    req: EventCreateRequest,
    background: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result, records = handle_create_event(db, ctx, req)
    _dispatch(background, notifier, records)
    return result


@router.patch("/events/{event_id}", response_model=ActionResult)
def update_event(
    event_id: str,
    req: EventUpdateRequest,
    background: BackgroundTasks,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    result, records = handle_update_event(db, ctx, event_id, req)
    _dispatch(background, notifier, records)
    return result


@router.delete("/events/{event_id}", response_model=ActionResult)
def delete_event(
    event_id: str,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    try:
        row = calendar_service.get(db, ctx.org_id, event_id)
    except StoreError as ex:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte ta bort händelse: {ex}")
    if not row:
        raise HTTPException(status_code=404, detail="Händelsen hittades inte.")
    _require_edit_access(ctx, row)

    try:
        calendar_service.delete(db, ctx, event_id)
    except ValueError as ex:
        _raise_value_error(ex)
    except StoreError as ex:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte ta bort händelse: {ex}")
    forget_event(ctx, event_id)
    return ActionResult(ok=True)


@router.post("/events/{event_id}/reschedule", response_model=ActionResult)
def reschedule(
    event_id: str,
    req: RescheduleRequest,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    try:
        row = calendar_service.get(db, ctx.org_id, event_id)
    except StoreError as ex:
        return ActionResult(ok=False, error="store_failure", message=f"Kunde inte flytta händelsen: {ex}")
    # unknown ids fall through to reschedule_event, which reports not_found
    if row:
        _require_edit_access(ctx, row)
    return reschedule_event(db, ctx, event_id, req.target_date, req.target_time)


@router.post("/conflicts", response_model=ConflictOut)
def check_conflicts(
    query: ConflictQuery,
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    try:
        hits = find_conflicts(db, ctx, query)
    except StoreError:
        raise HTTPException(status_code=502, detail="Kunde inte ladda kalenderdata")
    return ConflictOut(conflict=bool(hits), conflicts=hits)


@router.get("/grid/month")
def get_month_grid(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
) -> Dict[str, Any]:
    days = month_grid(year, month)
    weeks = [
        {"week": week_number(days[i]), "days": [d.isoformat() for d in days[i:i + 7]]}
        for i in range(0, 42, 7)
    ]
    return {"year": year, "month": month, "title": f"{SWEDISH_MONTHS[month - 1]} {year}", "weeks": weeks}


@router.get("/grid/week")
def get_week_grid(anchor: Optional[date] = Query(None)) -> Dict[str, Any]:
    a = anchor or _today()
    return {
        "week": week_number(a),
        "title": f"Vecka {week_number(a)}, {a.year}",
        "days": [d.isoformat() for d in week_days(a)],
    }


@router.get("/grid/timeslots", response_model=List[str])
def get_time_slots():
    return time_slots()


@router.get("/range")
def get_view_range(
    view: str = Query("month", pattern="^(month|week|day|agenda)$"),
    anchor: Optional[date] = Query(None),
) -> Dict[str, datetime]:
    date_from, date_to = view_range(view, anchor or _today())
    return {"date_from": date_from, "date_to": date_to}


@router.get("/permissions", response_model=PermissionsOut)
def get_permissions(ctx: RequestContext = Depends(get_request_context)):
    return describe(ctx)


@router.get("/users", response_model=List[UserSummary])
def get_visible_users(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    users = team_service.list_users(db, ctx.org_id)
    membership = team_service.viewer_membership(db, ctx)
    return capability_for(ctx.role).visible_users(ctx, users, membership)
