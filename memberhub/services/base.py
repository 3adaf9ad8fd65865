"""
Base class for all services.

Services are components that handle events and produce new events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from memberhub.core.events import Event, EventBus, Subscription


class Service(ABC):
    """
    Base class for all services.

    Services:
    1. Subscribe to specific event types
    2. Process those events
    3. Emit new events as a result

    Example:
        class AuditService(Service):
            service_id = "audit"
            subscribes_to = ["role.changed"]

            async def handle(self, event: Event) -> list[Event]:
                self.log.append(event.to_dict())
                return []
    """

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this service."""
        pass

    @property
    @abstractmethod
    def subscribes_to(self) -> list[str]:
        """
        List of event patterns this service handles.

        Supports wildcards like "identity.*" or "sync.failed".
        """
        pass

    @abstractmethod
    async def handle(self, event: Event) -> list[Event]:
        """
        Handle an event and return any resulting events.

        Returns:
            List of events produced by handling this event
            (can be empty if no follow-up events needed)
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.service_id})>"


def wire_service(event_bus: EventBus, service: Service) -> list[Subscription]:
    """Connect a service's handle method to each of its subscribed patterns."""
    return [
        event_bus.subscribe(pattern, service.handle)
        for pattern in service.subscribes_to
    ]
