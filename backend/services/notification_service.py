# services/notification_service.py
# Assignment notifications -> create-notification edge function (fire-and-forget)
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from config import NOTIFY_API_KEY, NOTIFY_TIMEOUT, NOTIFY_URL
from routes.calendar_time import format_swedish_date
from schemas.calendar_schema import NotificationRecord

logger = logging.getLogger(__name__)


def _action_url(event_id: str) -> str:
    return f"/kalender?highlight={event_id}"

def _date_suffix(ev, prefix: str = "den") -> str:
    return f" {prefix} {format_swedish_date(ev.start_time)}" if ev.start_time else ""

def user_assignment(user_id: str, ev) -> NotificationRecord:
    return NotificationRecord(
        target_user_id=user_id,
        title="Ny händelse schemalagd",
        message=f'Du har en ny händelse: "{ev.title}"{_date_suffix(ev)}',
        action_url=_action_url(ev.id),
        metadata={"event_id": ev.id, "event_title": ev.title},
    )

def team_assignment(team_id: str, ev, exclude_user_id: Optional[str] = None) -> NotificationRecord:
    return NotificationRecord(
        target_team_id=team_id,
        title="Ny teamhändelse schemalagd",
        message=f'Ditt team har en ny händelse: "{ev.title}"{_date_suffix(ev)}',
        action_url=_action_url(ev.id),
        exclude_user_id=exclude_user_id,
        metadata={"event_id": ev.id, "event_title": ev.title},
    )

def notifications_for_created(ev) -> List[NotificationRecord]:
    out: List[NotificationRecord] = []
    if ev.assigned_to_user_id:
        out.append(user_assignment(ev.assigned_to_user_id, ev))
    if ev.assigned_to_team_id:
        out.append(team_assignment(ev.assigned_to_team_id, ev))
    return out

def notifications_for_updated(before: Dict[str, Any], ev) -> List[NotificationRecord]:
    """
    Only a change of assignee to a non-empty value notifies. Time or title edits do not.

    :param before: snapshot taken before the update
    :type before: Dict[str, Any]
    :param ev: the updated event
    :return: records to dispatch
    :rtype: List[NotificationRecord]
    """

    out: List[NotificationRecord] = []
    new_user = ev.assigned_to_user_id
    if new_user and new_user != before.get("assigned_to_user_id"):
        out.append(user_assignment(new_user, ev))

    new_team = ev.assigned_to_team_id
    if new_team and new_team != before.get("assigned_to_team_id"):
        rec = team_assignment(new_team, ev, exclude_user_id=before.get("assigned_to_user_id"))
        rec.title = "Teamhändelse uppdaterad"
        rec.message = f'Händelsen "{ev.title}" har uppdaterats{_date_suffix(ev, "och är schemalagd den")}'
        out.append(rec)
    return out


class NotificationDispatcher:
    """
    Posts notification records to the edge function. Never raises: delivery
    problems are logged and the caller carries on.
    """

    def __init__(self, url: str = NOTIFY_URL, api_key: str = NOTIFY_API_KEY, timeout: float = NOTIFY_TIMEOUT):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def _payload(self, rec: NotificationRecord) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "type": rec.type,
            "title": rec.title,
            "message": rec.message,
            "action_url": rec.action_url,
            "metadata": rec.metadata,
        }
        if rec.target_user_id:
            body["user_id"] = rec.target_user_id
        if rec.target_team_id:
            body["team_id"] = rec.target_team_id
        if rec.exclude_user_id:
            body["exclude_user_id"] = rec.exclude_user_id
        return body

    def send(self, rec: NotificationRecord) -> bool:
        if not self.url:
            logger.debug(f"[notify] NOTIFY_URL not set, skipping '{rec.title}'")
            return False

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            r = requests.post(self.url, headers=headers, json=self._payload(rec), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[notify] dispatch failed: {e}")
            return False

        if not r.ok:
            logger.error("[notify] dispatch failed %s | %s", r.status_code, r.text)
            return False
        return True

    def send_all(self, records: Iterable[NotificationRecord]) -> int:
        return sum(1 for rec in records if self.send(rec))


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher()
