"""
Event system for memberhub.

Identity lifecycle changes, role administration and sync progress are all
announced on the bus. Components subscribe to the events they care about
instead of calling each other directly, which keeps cache invalidation in
one place.
"""

from __future__ import annotations

import fnmatch
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Type for event handlers
EventHandler = Callable[["Event"], Awaitable[list["Event"]]]


# Event types
SIGNED_IN = "identity.signed_in"
SIGNED_OUT = "identity.signed_out"
TOKEN_REFRESHED = "identity.token_refreshed"
ROLE_CHANGED = "role.changed"
ROLE_RESOLUTION_FAILED = "role.resolution_failed"
SYNC_STARTED = "sync.started"
SYNC_COMPLETED = "sync.completed"
SYNC_FAILED = "sync.failed"


@dataclass
class Event:
    """
    An event in the system.

    Events are immutable records of something that happened. The subject is
    the identity the event is about; it may be None for events such as a
    sign-out where the provider no longer knows who was signed in.
    """

    event_type: str  # e.g., "identity.signed_out", "sync.failed"
    subject_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    # Tracing
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: str | None = None  # Groups related events
    causation_id: str | None = None  # Event that caused this one

    # Timing
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def caused_by(self, parent: Event) -> Event:
        """Create a child event caused by parent, inheriting correlation."""
        return Event(
            event_type=self.event_type,
            subject_id=self.subject_id,
            payload=self.payload,
            correlation_id=parent.correlation_id or parent.id,
            causation_id=parent.id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "subject_id": self.subject_id,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "causation_id": self.causation_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Deserialize event from dictionary."""
        return cls(
            id=data["id"],
            event_type=data["event_type"],
            subject_id=data.get("subject_id"),
            payload=data.get("payload", {}),
            correlation_id=data.get("correlation_id"),
            causation_id=data.get("causation_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class Subscription:
    """A subscription to events matching a pattern."""

    pattern: str  # e.g., "identity.*" or "sync.failed"
    handler: EventHandler
    filter: dict[str, Any] = field(default_factory=dict)

    def matches(self, event: Event) -> bool:
        """Check if this subscription matches the given event."""
        if not fnmatch.fnmatch(event.event_type, self.pattern):
            return False

        for key, value in self.filter.items():
            if key == "subject_id" and event.subject_id != value:
                return False
            if key.startswith("payload."):
                payload_key = key[8:]
                if event.payload.get(payload_key) != value:
                    return False

        return True


class EventBus:
    """
    In-memory event bus.

    Handlers run in subscription order on the caller's event loop. A
    handler that raises is logged and skipped; the rest still run.
    """

    def __init__(self, max_history: int = 1000):
        self._subscriptions: list[Subscription] = []
        self._event_history: list[Event] = []
        self._max_history = max_history
        self._middlewares: list[Callable[[Event], Event | None]] = []

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        filter: dict[str, Any] | None = None,
    ) -> Subscription:
        """
        Subscribe to events matching a pattern.

        Args:
            pattern: Event type pattern (supports wildcards like "identity.*")
            handler: Async function to handle matching events
            filter: Additional filters (e.g., {"subject_id": "user_123"})

        Returns:
            The subscription object (can be used to unsubscribe)
        """
        subscription = Subscription(
            pattern=pattern,
            handler=handler,
            filter=filter or {},
        )
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def add_middleware(self, middleware: Callable[[Event], Event | None]) -> None:
        """
        Add middleware that processes events before they're dispatched.

        Middleware can modify events or return None to drop them.
        """
        self._middlewares.append(middleware)

    async def publish(self, event: Event) -> list[Event]:
        """
        Publish an event and return any events produced by handlers.

        Handlers can return new events, which are then also published.
        """
        current_event: Event | None = event
        for middleware in self._middlewares:
            if current_event is None:
                return []
            current_event = middleware(current_event)

        if current_event is None:
            return []

        self._event_history.append(current_event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

        matching = [s for s in self._subscriptions if s.matches(current_event)]

        all_resulting_events: list[Event] = []

        for subscription in matching:
            try:
                resulting_events = await subscription.handler(current_event)
                all_resulting_events.extend(resulting_events or [])
            except Exception:
                logger.exception(
                    "Error in event handler for %s", current_event.event_type
                )

        cascade: list[Event] = []
        for resulting_event in all_resulting_events:
            cascade.extend(await self.publish(resulting_event))

        return all_resulting_events + cascade

    def get_history(
        self,
        event_type: str | None = None,
        subject_id: str | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Query event history with optional filters."""
        results = self._event_history

        if event_type:
            results = [e for e in results if fnmatch.fnmatch(e.event_type, event_type)]

        if subject_id:
            results = [e for e in results if e.subject_id == subject_id]

        return results[-limit:]


# =============================================================================
# Convenience constructors
# =============================================================================


def signed_in(subject_id: str, **extra_payload) -> Event:
    """Create an identity.signed_in event."""
    return Event(event_type=SIGNED_IN, subject_id=subject_id, payload=extra_payload)


def signed_out(subject_id: str | None = None, **extra_payload) -> Event:
    """Create an identity.signed_out event."""
    return Event(event_type=SIGNED_OUT, subject_id=subject_id, payload=extra_payload)


def token_refreshed(subject_id: str, **extra_payload) -> Event:
    """Create an identity.token_refreshed event."""
    return Event(event_type=TOKEN_REFRESHED, subject_id=subject_id, payload=extra_payload)


def role_changed(subject_id: str, role: str, action: str, **extra_payload) -> Event:
    """Create a role.changed event (role granted or revoked)."""
    return Event(
        event_type=ROLE_CHANGED,
        subject_id=subject_id,
        payload={"role": role, "action": action, **extra_payload},
    )
