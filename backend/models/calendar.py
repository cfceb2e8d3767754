# models/calendar.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back aware UTC (sqlite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class UserProfile(Base):
    __tablename__ = "user_profiles"
    id = Column(String(36), primary_key=True, default=_uuid)
    organisation_id = Column(String(36), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(16), nullable=False, default="worker")  # admin|sales|worker


class Team(Base):
    __tablename__ = "teams"
    id = Column(String(36), primary_key=True, default=_uuid)
    organisation_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    specialty = Column(String(64), nullable=True)

    members = relationship("TeamMember", back_populates="team", lazy="selectin")


class TeamMember(Base):
    __tablename__ = "team_members"
    id = Column(String(36), primary_key=True, default=_uuid)
    organisation_id = Column(String(36), nullable=True)
    team_id = Column(String(36), ForeignKey("teams.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    role_in_team = Column(String(32), nullable=False, default="member")
    is_active = Column(Boolean, nullable=False, default=True)

    team = relationship("Team", back_populates="members")
    user = relationship("UserProfile", lazy="joined")


class CalendarEvent(Base):
    __tablename__ = "calendar_events"
    id = Column(String(36), primary_key=True, default=_uuid)
    organisation_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    type = Column(String(16), nullable=False, default="meeting")  # meeting|task|reminder
    start_time = Column(UTCDateTime, nullable=True, index=True)
    end_time = Column(UTCDateTime, nullable=True)
    # storage allows both; this service only ever writes one of them
    assigned_to_user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=True, index=True)
    assigned_to_team_id = Column(String(36), ForeignKey("teams.id"), nullable=True, index=True)
    related_lead_id = Column(String(36), nullable=True)
    related_job_id = Column(String(36), nullable=True)
    related_order_id = Column(String(36), nullable=True)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)

    assigned_to = relationship("UserProfile", lazy="joined")
    assigned_team = relationship("Team", lazy="joined")
