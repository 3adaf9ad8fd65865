"""
Notification Service.

Turns access failures into user-facing notices. The notice carries a
generic message; the detailed error goes to the log (and Sentry when
configured), never to the user.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from memberhub.core.events import ROLE_RESOLUTION_FAILED, SYNC_FAILED, Event
from memberhub.core.utils import utc_now
from memberhub.integrations.sentry import capture_message
from memberhub.services.base import Service


@dataclass
class Notice:
    """A toast-style message for the UI."""

    title: str
    description: str
    variant: str = "default"  # default, destructive
    subject_id: str | None = None
    event_trigger: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


# Generic copy per failure type
NOTICE_TEMPLATES: dict[str, tuple[str, str]] = {
    ROLE_RESOLUTION_FAILED: (
        "Error loading roles",
        "There was a problem loading your access permissions. Please try again.",
    ),
    SYNC_FAILED: (
        "Role sync failed",
        "Some role records could not be synchronised. You can retry from the sync dashboard.",
    ),
}


class NotificationService(Service):
    """
    Service that records notices for failures.

    Notices are kept in memory, newest last, for the UI to poll.
    """

    def __init__(self, max_notices: int = 200):
        self._notices: list[Notice] = []
        self._max_notices = max_notices

    @property
    def service_id(self) -> str:
        return "notification"

    @property
    def subscribes_to(self) -> list[str]:
        return [ROLE_RESOLUTION_FAILED, SYNC_FAILED]

    async def handle(self, event: Event) -> list[Event]:
        template = NOTICE_TEMPLATES.get(event.event_type)
        if template is None:
            return []

        title, description = template
        notice = Notice(
            title=title,
            description=description,
            variant="destructive",
            subject_id=event.subject_id,
            event_trigger=event.event_type,
        )
        self._record(notice)

        # Details for operators only
        detail = event.payload.get("message") or event.payload.get("error_message") or ""
        capture_message(
            f"{event.event_type} for {event.subject_id}: {detail}",
            level="error",
            subject_id=event.subject_id,
        )

        return [Event(
            event_type="notification.sent",
            subject_id=event.subject_id,
            payload={"title": title, "trigger": event.event_type},
            correlation_id=event.correlation_id,
            causation_id=event.id,
        )]

    def _record(self, notice: Notice) -> None:
        self._notices.append(notice)
        if len(self._notices) > self._max_notices:
            self._notices = self._notices[-self._max_notices:]

    def notices(self, subject_id: str | None = None, limit: int = 20) -> list[Notice]:
        results = self._notices
        if subject_id:
            results = [n for n in results if n.subject_id == subject_id]
        return results[-limit:]
