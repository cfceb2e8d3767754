from datetime import datetime, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db
from main import app
from models.calendar import Base, CalendarEvent, Team, TeamMember, UserProfile
from routes import calendar_state
from schemas.calendar_schema import RequestContext
from services.notification_service import get_notifier

ORG = "org-1"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_ctx(user_id: str = "U1", role: str = "admin", session: Optional[str] = None, org: str = ORG) -> RequestContext:
    return RequestContext(org_id=org, user_id=user_id, role=role, session_id=session or user_id)


def make_headers(user_id: str = "U1", role: str = "admin", session: Optional[str] = None, org: str = ORG) -> dict:
    h = {"X-Org-Id": org, "X-User-Id": user_id, "X-User-Role": role}
    if session:
        h["X-Session-Id"] = session
    return h


def add_event(db, title, start, end, user=None, team=None, org=ORG, type="meeting") -> CalendarEvent:
    ev = CalendarEvent(
        organisation_id=org,
        title=title,
        type=type,
        start_time=start,
        end_time=end,
        assigned_to_user_id=user,
        assigned_to_team_id=team,
    )
    db.add(ev)
    db.commit()
    db.refresh(ev)
    return ev


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send(self, rec):
        self.sent.append(rec)
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_session_cache():
    calendar_state.SESSION_EVENTS.clear()
    calendar_state.SESSION_FILTERS.clear()
    calendar_state.SESSION_CACHE_VERSION.clear()
    yield
    calendar_state.SESSION_EVENTS.clear()
    calendar_state.SESSION_FILTERS.clear()
    calendar_state.SESSION_CACHE_VERSION.clear()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(db, notifier):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed(db):
    """
    U1 admin, U2/U3 workers, U4 sales, U5 worker (inactive in T1), U6 worker (no team).
    T1 = {U2, U3 active, U5 inactive}, T2 = {U6}.
    """
    users = [
        UserProfile(id="U1", organisation_id=ORG, full_name="Anna Admin", email="anna@example.se", role="admin"),
        UserProfile(id="U2", organisation_id=ORG, full_name="Bertil Berg", role="worker"),
        UserProfile(id="U3", organisation_id=ORG, full_name="Cecilia Carlsson", role="worker"),
        UserProfile(id="U4", organisation_id=ORG, full_name="David Dahl", role="sales"),
        UserProfile(id="U5", organisation_id=ORG, full_name="Erik Ek", role="worker"),
        UserProfile(id="U6", organisation_id=ORG, full_name="Frida Falk", role="worker"),
    ]
    teams = [
        Team(id="T1", organisation_id=ORG, name="Montage", specialty="installation"),
        Team(id="T2", organisation_id=ORG, name="Service", specialty="service"),
    ]
    db.add_all(users + teams)
    db.flush()
    db.add_all([
        TeamMember(organisation_id=ORG, team_id="T1", user_id="U2", is_active=True),
        TeamMember(organisation_id=ORG, team_id="T1", user_id="U3", is_active=True),
        TeamMember(organisation_id=ORG, team_id="T1", user_id="U5", is_active=False),
        TeamMember(organisation_id=ORG, team_id="T2", user_id="U6", is_active=True),
    ])
    db.commit()
    return {"users": users, "teams": teams}
