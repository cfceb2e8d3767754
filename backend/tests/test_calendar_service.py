from datetime import timezone

import pytest

from conftest import ORG, add_event, make_ctx, utc
from models.calendar import CalendarEvent
from schemas.calendar_schema import (
    CalendarEventCreate,
    CalendarEventUpdate,
    CalendarFilters,
    TeamAssignee,
    UserAssignee,
)
from services import calendar_service, team_service
from services.calendar_service import StoreError


def payload(**kw):
    data = dict(
        title="Kickoff",
        type="meeting",
        start_time=utc(2024, 3, 4, 9, 0),
        end_time=utc(2024, 3, 4, 10, 0),
        assignee=UserAssignee(id="U1"),
    )
    data.update(kw)
    return CalendarEventCreate(**data)


def titles(rows):
    return [r.title for r in rows]


def test_create_maps_assignee_to_one_column(db):
    ctx = make_ctx()
    ev = calendar_service.create(db, ctx, payload(assignee=TeamAssignee(id="T1")))
    assert ev.id
    assert ev.organisation_id == ORG
    assert ev.assigned_to_team_id == "T1"
    assert ev.assigned_to_user_id is None
    assert ev.created_at is not None


def test_timestamps_come_back_as_utc(db):
    ev = calendar_service.create(db, make_ctx(), payload())
    db.expire_all()
    again = calendar_service.get(db, ORG, ev.id)
    assert again.start_time == utc(2024, 3, 4, 9, 0)
    assert again.start_time.tzinfo == timezone.utc


def test_list_orders_by_start_with_undated_last(db):
    add_event(db, "late", utc(2024, 3, 6, 9, 0), utc(2024, 3, 6, 10, 0), user="U1")
    add_event(db, "undated", None, None, user="U1")
    add_event(db, "early", utc(2024, 3, 4, 9, 0), utc(2024, 3, 4, 10, 0), user="U1")
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters())) == ["early", "late", "undated"]


def test_empty_filter_returns_everything_in_org_only(db):
    add_event(db, "mine", utc(2024, 3, 4, 9, 0), None, user="U1")
    add_event(db, "team", utc(2024, 3, 4, 10, 0), None, team="T1")
    add_event(db, "nobody", utc(2024, 3, 4, 11, 0), None)
    add_event(db, "other org", utc(2024, 3, 4, 12, 0), None, user="U1", org="org-2")
    assert titles(calendar_service.get_list(db, ORG)) == ["mine", "team", "nobody"]


def test_team_filter_resolves_active_members(db, seed):
    add_event(db, "U2", utc(2024, 3, 4, 8, 0), None, user="U2")
    add_event(db, "U3", utc(2024, 3, 4, 9, 0), None, user="U3")
    add_event(db, "U5 inactive", utc(2024, 3, 4, 10, 0), None, user="U5")
    add_event(db, "T1", utc(2024, 3, 4, 11, 0), None, team="T1")
    add_event(db, "U6", utc(2024, 3, 4, 12, 0), None, user="U6")

    rows = calendar_service.get_list(db, ORG, CalendarFilters(team_ids=["T1"]))
    assert titles(rows) == ["U2", "U3", "T1"]

    rows = calendar_service.get_list(db, ORG, CalendarFilters(team_ids=["T1"], user_ids=["U5"]))
    assert titles(rows) == ["U2", "U3", "U5 inactive", "T1"]


def test_active_member_lookup(db, seed):
    assert team_service.get_active_member_ids(db, ORG, ["T1"]) == {"U2", "U3"}
    assert team_service.get_active_member_ids(db, "org-2", ["T1"]) == set()
    assert team_service.get_active_member_ids(db, ORG, []) == set()
    membership = team_service.viewer_membership(db, make_ctx("U2", "worker"))
    assert membership.team_ids == {"T1"}
    assert membership.co_member_ids == {"U2", "U3"}


def test_user_type_and_window_filters(db):
    add_event(db, "before", utc(2024, 3, 1, 9, 0), None, user="U1")
    add_event(db, "inside", utc(2024, 3, 4, 9, 0), None, user="U1", type="task")
    add_event(db, "inside U2", utc(2024, 3, 4, 10, 0), None, user="U2")
    add_event(db, "unassigned", utc(2024, 3, 4, 11, 0), None)
    add_event(db, "after", utc(2024, 3, 9, 9, 0), None, user="U1")

    window = dict(date_from=utc(2024, 3, 4, 0, 0), date_to=utc(2024, 3, 8, 23, 59))
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters(**window))) == ["inside", "inside U2", "unassigned"]
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters(user_ids=["U1"], **window))) == ["inside"]
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters(type="task"))) == ["inside"]
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters(type="all", **window))) == ["inside", "inside U2", "unassigned"]
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters(assigned_to="unassigned"))) == ["unassigned"]
    assert titles(calendar_service.get_list(db, ORG, CalendarFilters(assigned_to="U2"))) == ["inside U2"]


def test_create_many_is_all_or_nothing(db):
    ctx = make_ctx()
    good = payload()
    broken = payload().model_copy(update={"title": None})  # violates NOT NULL
    with pytest.raises(StoreError):
        calendar_service.create_many(db, ctx, [good, good, broken])
    assert db.query(CalendarEvent).count() == 0

    rows = calendar_service.create_many(db, ctx, [good, payload(title="Två")])
    assert len(rows) == 2
    assert db.query(CalendarEvent).count() == 2


def test_update_returns_snapshot_before_change(db):
    ctx = make_ctx()
    ev = calendar_service.create(db, ctx, payload())
    row, before = calendar_service.update(db, ctx, ev.id, CalendarEventUpdate(assignee=TeamAssignee(id="T1")))
    assert before["assigned_to_user_id"] == "U1"
    assert row.assigned_to_user_id is None
    assert row.assigned_to_team_id == "T1"
    assert row.start_time == utc(2024, 3, 4, 9, 0)


def test_update_validates_merged_interval(db):
    ctx = make_ctx()
    ev = calendar_service.create(db, ctx, payload())
    with pytest.raises(ValueError, match="INVALID_INTERVAL"):
        calendar_service.update(db, ctx, ev.id, CalendarEventUpdate(start_time=utc(2024, 3, 4, 10, 0)))
    with pytest.raises(ValueError, match="MISSING_START"):
        calendar_service.update(db, ctx, ev.id, CalendarEventUpdate(start_time=None))
    with pytest.raises(ValueError, match="NOT_FOUND"):
        calendar_service.update(db, ctx, "nope", CalendarEventUpdate(title="x"))


def test_other_org_cannot_touch_event(db):
    ev = calendar_service.create(db, make_ctx(), payload())
    assert calendar_service.get(db, "org-2", ev.id) is None
    with pytest.raises(ValueError, match="NOT_FOUND"):
        calendar_service.delete(db, make_ctx(org="org-2"), ev.id)


def test_delete_is_hard(db):
    ctx = make_ctx()
    ev = calendar_service.create(db, ctx, payload())
    calendar_service.delete(db, ctx, ev.id)
    assert calendar_service.get(db, ORG, ev.id) is None
    with pytest.raises(ValueError, match="NOT_FOUND"):
        calendar_service.delete(db, ctx, ev.id)


def test_update_ignores_null_on_required_columns(db):
    ctx = make_ctx()
    ev = calendar_service.create(db, ctx, payload(type="task"))
    row, _ = calendar_service.update(db, ctx, ev.id, CalendarEventUpdate(type=None, title=None, location="Kontoret"))
    assert row.type == "task"
    assert row.title == "Kickoff"
    assert row.location == "Kontoret"
