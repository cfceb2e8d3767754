# schemas/calendar_schema.py
from datetime import date, datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

EventType = Literal["meeting", "task", "reminder"]
Role = Literal["admin", "sales", "worker"]
RecurrenceType = Literal["daily", "weekly", "monthly"]
ViewMode = Literal["month", "week", "day", "agenda"]


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    # naive input is taken as UTC
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


# Assignee (tagged variant)
class UserAssignee(BaseModel):
    kind: Literal["user"] = "user"
    id: str = Field(min_length=1)


class TeamAssignee(BaseModel):
    kind: Literal["team"] = "team"
    id: str = Field(min_length=1)


class Unassigned(BaseModel):
    kind: Literal["unassigned"] = "unassigned"


Assignee = Annotated[Union[UserAssignee, TeamAssignee, Unassigned], Field(discriminator="kind")]


def assignee_columns(a: Union[UserAssignee, TeamAssignee, Unassigned]) -> Dict[str, Optional[str]]:
    """
    Maps an assignee onto the two storage columns. At most one is set.
    """
    return {
        "assigned_to_user_id": a.id if isinstance(a, UserAssignee) else None,
        "assigned_to_team_id": a.id if isinstance(a, TeamAssignee) else None,
    }


def assignee_of(obj: Any) -> Union[UserAssignee, TeamAssignee, Unassigned]:
    """
    Reads the assignee back from a stored row. User wins when both columns are set.
    """
    user_id = getattr(obj, "assigned_to_user_id", None)
    team_id = getattr(obj, "assigned_to_team_id", None)
    if user_id:
        return UserAssignee(id=user_id)
    if team_id:
        return TeamAssignee(id=team_id)
    return Unassigned()


class RequestContext(BaseModel):
    org_id: str
    user_id: str
    role: Role
    session_id: str


# Input
class CalendarEventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    type: EventType = "meeting"
    start_time: datetime
    end_time: Optional[datetime] = None
    assignee: Assignee = Field(default_factory=Unassigned)
    related_lead_id: Optional[str] = None
    related_job_id: Optional[str] = None
    related_order_id: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Titel är obligatorisk.")
        return v.strip()

    @field_validator("start_time")
    @classmethod
    def _start_utc(cls, v):
        return _as_utc(v)

    @field_validator("end_time")
    @classmethod
    def _end_after_start(cls, v, info):
        v = _as_utc(v)
        start = info.data.get("start_time")
        if v and start and v <= start:
            raise ValueError("Sluttid måste vara efter starttid.")
        return v


class CalendarEventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[EventType] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    assignee: Optional[Assignee] = None
    related_lead_id: Optional[str] = None
    related_job_id: Optional[str] = None
    related_order_id: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Titel är obligatorisk.")
        return v.strip() if v else v

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)


class RecurrenceSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: RecurrenceType
    interval: int = Field(1, ge=1)
    end_date: date = Field(alias="endDate")


class EventCreateRequest(CalendarEventCreate):
    # confirmed=True overrides a conflict warning
    confirmed: bool = False
    recurrence: Optional[RecurrenceSpec] = None


class EventUpdateRequest(CalendarEventUpdate):
    confirmed: bool = False


class RescheduleRequest(BaseModel):
    target_date: date
    target_time: Optional[str] = Field(None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class ConflictQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    assignee: Assignee = Field(default_factory=Unassigned)
    exclude_event_id: Optional[str] = Field(None, alias="excludeEventId")

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)


class CalendarFilters(BaseModel):
    """FilterSet: date window plus user/team selection."""

    type: Optional[str] = None
    assigned_to: Optional[str] = None  # 'unassigned' | user id
    user_ids: List[str] = Field(default_factory=list)
    team_ids: List[str] = Field(default_factory=list)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)


# Output
class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: Optional[str] = None
    role: Role


class TeamMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    is_active: bool
    user: Optional[UserSummary] = None


class TeamSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    specialty: Optional[str] = None
    members: List[TeamMemberOut] = Field(default_factory=list)


class CalendarEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    organisation_id: str
    title: str
    type: EventType
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    assigned_to_user_id: Optional[str] = None
    assigned_to_team_id: Optional[str] = None
    related_lead_id: Optional[str] = None
    related_job_id: Optional[str] = None
    related_order_id: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None
    assigned_to: Optional[UserSummary] = None
    assigned_team: Optional[TeamSummary] = None

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)

    @computed_field
    @property
    def assignee(self) -> Union[UserAssignee, TeamAssignee, Unassigned]:
        return assignee_of(self)


class NotificationRecord(BaseModel):
    target_user_id: Optional[str] = None
    target_team_id: Optional[str] = None
    type: str = "event_assignment"
    title: str
    message: str
    action_url: str
    exclude_user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ActionResult(BaseModel):
    """
    Result/error pair returned for soft outcomes (conflict warning, store failure).
    """
    ok: bool
    error: Optional[Literal["validation", "conflict", "store_failure", "forbidden", "not_found"]] = None
    message: Optional[str] = None
    need_confirm: bool = False
    conflicts: List[CalendarEventOut] = Field(default_factory=list)
    data: Optional[Union[CalendarEventOut, List[CalendarEventOut]]] = None


class ConflictOut(BaseModel):
    conflict: bool
    conflicts: List[CalendarEventOut] = Field(default_factory=list)


class PermissionsOut(BaseModel):
    role: Role
    message: str
    can_view_all: bool
    can_create_for_others: bool
