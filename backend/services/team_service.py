# services/team_service.py
# Team-membership collaborator (read-only from the calendar's point of view)
from sqlalchemy.orm import Session
from typing import Iterable, List, Set

from models.calendar import Team, TeamMember, UserProfile
from routes.calendar_permissions import Membership
from schemas.calendar_schema import RequestContext


def get_active_member_ids(db: Session, org_id: str, team_ids: Iterable[str]) -> Set[str]:
    ids = [t for t in team_ids if t]
    if not ids: return set()
    rows = (
        db.query(TeamMember.user_id)
        .join(Team, Team.id == TeamMember.team_id)
        .filter(
            Team.organisation_id == org_id,
            TeamMember.team_id.in_(ids),
            TeamMember.is_active.is_(True),
        )
        .all()
    )
    return {r.user_id for r in rows}

def get_user_team_ids(db: Session, org_id: str, user_id: str) -> Set[str]:
    rows = (
        db.query(TeamMember.team_id)
        .join(Team, Team.id == TeamMember.team_id)
        .filter(
            Team.organisation_id == org_id,
            TeamMember.user_id == user_id,
            TeamMember.is_active.is_(True),
        )
        .all()
    )
    return {r.team_id for r in rows}

def viewer_membership(db: Session, ctx: RequestContext) -> Membership:
    team_ids = get_user_team_ids(db, ctx.org_id, ctx.user_id)
    co_members = get_active_member_ids(db, ctx.org_id, team_ids)
    return Membership(team_ids=frozenset(team_ids), co_member_ids=frozenset(co_members))

def list_users(db: Session, org_id: str) -> List[UserProfile]:
    return (
        db.query(UserProfile)
        .filter(UserProfile.organisation_id == org_id)
        .order_by(UserProfile.full_name.asc())
        .all()
    )

def list_teams(db: Session, org_id: str) -> List[Team]:
    return db.query(Team).filter(Team.organisation_id == org_id).order_by(Team.name.asc()).all()
