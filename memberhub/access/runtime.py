"""
Access runtime - builds and wires the access-control components.

One runtime per process (or per client instance). Everything that holds
mutable authorization state lives here, so there are no ambient globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from memberhub.access.admin import RoleAdministration
from memberhub.access.cache import ResolutionCache
from memberhub.access.resolver import RoleResolver
from memberhub.access.session import SessionProvider
from memberhub.access.sync import SyncCoordinator
from memberhub.config import Settings, get_settings
from memberhub.config_loader import SeedLoader
from memberhub.core.events import EventBus
from memberhub.services import (
    NotificationService,
    RoleCacheInvalidationService,
    wire_service,
)
from memberhub.storage.base import StorageProvider
from memberhub.storage.local import create_local_storage
from memberhub.storage.postgrest import PostgrestAuthorityStore

logger = logging.getLogger(__name__)


@dataclass
class AccessRuntime:
    """All access-control components for one process."""

    settings: Settings
    event_bus: EventBus
    storage: StorageProvider
    resolver: RoleResolver
    cache: ResolutionCache
    coordinator: SyncCoordinator
    session: SessionProvider
    admin: RoleAdministration
    notifications: NotificationService

    async def startup(self) -> None:
        """Load development seed data if configured."""
        if self.settings.seed_file and self.storage.metadata is not None:
            loader = SeedLoader(self.storage.authority, self.storage.metadata)
            await loader.load_file(self.settings.seed_file)

    async def shutdown(self) -> None:
        """Let background work finish and release connections."""
        await self.cache.drain()
        await self.coordinator.join()
        if isinstance(self.storage.authority, PostgrestAuthorityStore):
            await self.storage.authority.aclose()


def create_storage(settings: Settings) -> StorageProvider:
    """Pick the authority backend from settings."""
    if settings.use_postgrest:
        logger.info(f"Using PostgREST authority store at {settings.authority_url}")
        return StorageProvider(authority=PostgrestAuthorityStore())
    logger.info("Using in-memory authority store")
    return create_local_storage()


def create_runtime(
    settings: Settings | None = None,
    storage: StorageProvider | None = None,
    event_bus: EventBus | None = None,
    single_identity: bool = False,
) -> AccessRuntime:
    """
    Build a fully wired runtime.

    Args:
        settings: Defaults to get_settings()
        storage: Defaults to the backend named in settings
        event_bus: Defaults to a fresh bus
        single_identity: True for a client instance with one signed-in
            subject, False for a server handling many
    """
    settings = settings or get_settings()
    storage = storage or create_storage(settings)
    event_bus = event_bus or EventBus()

    resolver = RoleResolver(
        storage.authority,
        timeout=settings.authority_timeout_seconds,
        max_attempts=settings.authority_retry_attempts,
        retry_wait=settings.authority_retry_wait_seconds,
    )
    cache = ResolutionCache(
        resolver,
        ttl=settings.role_cache_ttl_seconds,
        stale_while_revalidate=settings.role_cache_stale_while_revalidate,
        event_bus=event_bus,
    )
    coordinator = SyncCoordinator(
        resolver,
        storage.authority,
        event_bus=event_bus,
        max_concurrency=settings.sync_max_concurrency,
    )
    notifications = NotificationService()

    wire_service(event_bus, RoleCacheInvalidationService(cache))
    wire_service(event_bus, notifications)

    return AccessRuntime(
        settings=settings,
        event_bus=event_bus,
        storage=storage,
        resolver=resolver,
        cache=cache,
        coordinator=coordinator,
        session=SessionProvider(event_bus, single_identity=single_identity),
        admin=RoleAdministration(storage.authority, event_bus),
        notifications=notifications,
    )
