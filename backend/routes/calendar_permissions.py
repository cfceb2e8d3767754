# routes/calendar_permissions.py
# Role -> capability table for calendar visibility and authoring.
#
# These are UI gates only. Real enforcement belongs in the database
# (row-level policies); nothing here authenticates anyone.

from typing import Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Tuple

from schemas.calendar_schema import RequestContext, UserAssignee


class Membership(NamedTuple):
    """Viewer's active team ids and the active members of those teams."""

    team_ids: FrozenSet[str] = frozenset()
    co_member_ids: FrozenSet[str] = frozenset()


class RoleCapability:
    role = ""
    message = "Begränsad kalenderåtkomst"
    can_view_all = False
    can_create_for_others = False

    def can_view_user(self, ctx: RequestContext, user_id: str, membership: Membership) -> bool:
        return user_id == ctx.user_id

    def can_view_team(self, ctx: RequestContext, team_id: str, membership: Membership) -> bool:
        return False

    def can_create_for(self, ctx: RequestContext, assignee) -> bool:
        return isinstance(assignee, UserAssignee) and assignee.id == ctx.user_id

    def visible_users(self, ctx: RequestContext, users: Iterable, membership: Membership) -> List:
        return [u for u in users if u.id == ctx.user_id]

    def default_selection(self, ctx: RequestContext, membership: Membership) -> Optional[Tuple[List[str], List[str]]]:
        """
        (user_ids, team_ids) used when a listing names nobody. None means no
        assignee restriction.
        """
        return [ctx.user_id], []


class AdminCapability(RoleCapability):
    role = "admin"
    message = "Du kan visa och hantera alla kalendrar i organisationen"
    can_view_all = True
    can_create_for_others = True

    def can_view_user(self, ctx, user_id, membership):
        return True

    def can_view_team(self, ctx, team_id, membership):
        return True

    def can_create_for(self, ctx, assignee):
        return True

    def visible_users(self, ctx, users, membership):
        return list(users)

    def default_selection(self, ctx, membership):
        return None


class SalesCapability(RoleCapability):
    # coarse: sales may look at and book for anyone; team checks happen downstream
    role = "sales"
    message = "Du kan visa din egen kalender och ditt teams kalendrar"
    can_create_for_others = True

    def can_view_user(self, ctx, user_id, membership):
        return True

    def can_view_team(self, ctx, team_id, membership):
        return True

    def can_create_for(self, ctx, assignee):
        return True

    def visible_users(self, ctx, users, membership):
        return [u for u in users if u.role in ("admin", "sales") or u.id == ctx.user_id]

    def default_selection(self, ctx, membership):
        return None


class WorkerCapability(RoleCapability):
    role = "worker"
    message = "Du kan visa din egen kalender och ditt teams kalendrar"

    def can_view_user(self, ctx, user_id, membership):
        return user_id == ctx.user_id or user_id in membership.co_member_ids

    def can_view_team(self, ctx, team_id, membership):
        return team_id in membership.team_ids

    def visible_users(self, ctx, users, membership):
        return [u for u in users if u.id == ctx.user_id or u.id in membership.co_member_ids]

    def default_selection(self, ctx, membership):
        # own calendar, team co-members and team-level events
        return sorted({ctx.user_id} | membership.co_member_ids), sorted(membership.team_ids)


CAPABILITIES: Dict[str, RoleCapability] = {
    c.role: c for c in (AdminCapability(), SalesCapability(), WorkerCapability())
}


def capability_for(role: str) -> RoleCapability:
    # unknown roles get the most restrictive behaviour
    return CAPABILITIES.get(role) or RoleCapability()


def can_view_calendar(
    ctx: RequestContext,
    membership: Membership,
    target_user_id: Optional[str] = None,
    target_team_id: Optional[str] = None,
) -> bool:
    """
    Whether ctx may look at a user's or a team's calendar. No target means the
    viewer's own calendar.

    :param ctx: request context
    :type ctx: RequestContext
    :param membership: viewer's team memberships (active only)
    :type membership: Membership
    :param target_user_id: user whose calendar is requested
    :type target_user_id: Optional[str]
    :param target_team_id: team whose calendar is requested
    :type target_team_id: Optional[str]
    :return: True if allowed
    :rtype: bool
    """

    cap = capability_for(ctx.role)
    if target_user_id and not cap.can_view_user(ctx, target_user_id, membership):
        return False
    if target_team_id and not cap.can_view_team(ctx, target_team_id, membership):
        return False
    return True


def can_create_event_for(ctx: RequestContext, assignee) -> bool:
    return capability_for(ctx.role).can_create_for(ctx, assignee)


def permission_message(role: str) -> str:
    return capability_for(role).message


def describe(ctx: RequestContext) -> Dict[str, object]:
    cap = capability_for(ctx.role)
    return {
        "role": ctx.role,
        "message": cap.message,
        "can_view_all": cap.can_view_all,
        "can_create_for_others": cap.can_create_for_others,
    }
