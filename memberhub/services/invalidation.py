"""
Role cache invalidation service.

The only place cached roles are evicted in response to the outside
world: identity lifecycle events from the session provider and role
changes from administration.
"""

from __future__ import annotations

from memberhub.access.cache import ResolutionCache
from memberhub.core.events import ROLE_CHANGED, Event
from memberhub.services.base import Service


class RoleCacheInvalidationService(Service):
    """Forwards identity.* and role.changed events to the ResolutionCache."""

    def __init__(self, cache: ResolutionCache):
        self.cache = cache

    @property
    def service_id(self) -> str:
        return "role_cache_invalidation"

    @property
    def subscribes_to(self) -> list[str]:
        return ["identity.*", ROLE_CHANGED]

    async def handle(self, event: Event) -> list[Event]:
        return await self.cache.invalidate_on_identity_event(event)
