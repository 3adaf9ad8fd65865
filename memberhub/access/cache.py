"""
Resolution cache.

Memoizes resolved roles per subject with a TTL and makes sure the
authority store is asked at most once at a time per subject.

Lifecycle of an entry:
    - created by a successful resolution
    - fresh for `ttl` seconds
    - stale afterwards: served once more while a background refresh runs
      (stale-while-revalidate); if that refresh fails the entry is dropped
    - removed immediately by invalidate() or an identity event

Every resolution is tagged with the identity generation it started in.
Sign-out bumps the generation, so a resolution that finishes afterwards
is thrown away and its waiters get IdentityChanged. Other invalidations
(sign-in, role changes) keep the identity: a resolution caught by one of
those is not cached and its waiters are served by a fresh resolution.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from memberhub.access.errors import AccessError, IdentityChanged
from memberhub.access.resolver import RoleResolver
from memberhub.config import get_settings
from memberhub.core.events import (
    ROLE_CHANGED,
    ROLE_RESOLUTION_FAILED,
    SIGNED_IN,
    SIGNED_OUT,
    TOKEN_REFRESHED,
    Event,
    EventBus,
)
from memberhub.core.models import Role

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A resolved role and when it was resolved (monotonic seconds)."""

    role: Role
    resolved_at: float


class _Superseded(Exception):
    """An in-flight resolution was invalidated without an identity change."""


class ResolutionCache:
    """
    Cache-first access to resolved roles.

    Usage:
        cache = ResolutionCache(RoleResolver(store))
        role = await cache.get("user_123")
        cache.invalidate("user_123")
    """

    def __init__(
        self,
        resolver: RoleResolver,
        ttl: float | None = None,
        stale_while_revalidate: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
        event_bus: EventBus | None = None,
    ):
        settings = get_settings()
        self.resolver = resolver
        self.ttl = ttl if ttl is not None else settings.role_cache_ttl_seconds
        self.stale_while_revalidate = (
            stale_while_revalidate
            if stale_while_revalidate is not None
            else settings.role_cache_stale_while_revalidate
        )
        self.clock = clock
        self.event_bus = event_bus

        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[Role]] = {}
        self._background: set[asyncio.Task] = set()

        # Identity generation = (global epoch, per-subject counter). Counters
        # only exist while a resolution for the subject is running.
        self._epoch = 0
        self._generations: dict[str, int] = {}
        self._running: dict[str, int] = {}

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, subject_id: str) -> Role:
        """
        Return the subject's role, resolving it if needed.

        Raises:
            AuthorityUnavailable / Unauthorized: resolution failed and no
                usable cached value exists
            IdentityChanged: the subject was signed out while the
                resolution was in flight
        """
        entry = self._entries.get(subject_id)
        if entry is not None:
            if self.is_fresh(entry):
                return entry.role
            if self.stale_while_revalidate:
                logger.debug(f"Serving stale role for {subject_id} while revalidating")
                self._revalidate_in_background(subject_id)
                return entry.role

        return await self._shared_resolution(subject_id)

    async def refresh(self, subject_id: str) -> Role:
        """
        Force a new resolution.

        On failure a still-fresh entry is kept and the error propagates.
        """
        return await self._shared_resolution(subject_id)

    def peek(self, subject_id: str) -> Role | None:
        """The cached role (fresh or stale) without resolving anything."""
        entry = self._entries.get(subject_id)
        return entry.role if entry else None

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.resolved_at < self.ttl

    def is_resolving(self, subject_id: str) -> bool:
        return subject_id in self._inflight

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self, subject_id: str | None = None) -> None:
        """
        Drop cached state for one subject, or for everyone when None.

        Resolutions already in flight are not cached when they finish;
        their waiters are served by a new resolution.
        """
        if subject_id is None:
            self._entries.clear()
            self._inflight.clear()
            logger.info("Role cache invalidated for all subjects")
            return

        self._entries.pop(subject_id, None)
        self._inflight.pop(subject_id, None)
        logger.info(f"Role cache invalidated for {subject_id}")

    def discard_identity(self, subject_id: str | None = None) -> None:
        """
        Sign-out: invalidate, and fail in-flight resolutions for the
        subject (everyone when None) with IdentityChanged.
        """
        if subject_id is None:
            self._epoch += 1
        elif subject_id in self._running:
            self._generations[subject_id] = self._generations.get(subject_id, 0) + 1
        self.invalidate(subject_id)

    async def invalidate_on_identity_event(self, event: Event) -> list[Event]:
        """
        Event handler for identity lifecycle and role administration events.

        - identity.signed_out: the subject (or everyone, if unknown) is
          dropped; nothing resolved before sign-out may be served later
        - identity.signed_in: the subject is dropped so the first get()
          resolves fresh
        - role.changed: the subject is dropped
        - identity.token_refreshed: same identity, nothing to do
        """
        if event.event_type == SIGNED_OUT:
            self.discard_identity(event.subject_id)
        elif event.event_type in (SIGNED_IN, ROLE_CHANGED):
            self.invalidate(event.subject_id or None)
        elif event.event_type == TOKEN_REFRESHED:
            logger.debug(f"Token refreshed for {event.subject_id}; role cache kept")
        return []

    # =========================================================================
    # Single-flight resolution
    # =========================================================================

    async def _shared_resolution(self, subject_id: str) -> Role:
        while True:
            task = self._inflight.get(subject_id)
            if task is None:
                task = asyncio.create_task(self._resolve_and_store(subject_id))
                self._inflight[subject_id] = task
                task.add_done_callback(lambda t: self._forget(subject_id, t))
            else:
                logger.debug(f"Joining in-flight resolution for {subject_id}")

            # Shielded so one caller going away does not cancel it for the others
            try:
                return await asyncio.shield(task)
            except _Superseded:
                logger.debug(f"Resolution for {subject_id} superseded; resolving again")

    def _forget(self, subject_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(subject_id) is task:
            del self._inflight[subject_id]
        if not task.cancelled():
            task.exception()  # mark retrieved; callers get it through shield()

    def _generation(self, subject_id: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(subject_id, 0)

    def _release(self, subject_id: str) -> None:
        remaining = self._running[subject_id] - 1
        if remaining:
            self._running[subject_id] = remaining
        else:
            # Nobody holds a captured generation for this subject any more
            del self._running[subject_id]
            self._generations.pop(subject_id, None)

    async def _resolve_and_store(self, subject_id: str) -> Role:
        generation = self._generation(subject_id)
        self._running[subject_id] = self._running.get(subject_id, 0) + 1
        try:
            role = await self.resolver.resolve(subject_id)
        except AccessError as e:
            if self._generation(subject_id) != generation:
                logger.info(f"Dropping failed resolution for {subject_id}: signed out")
                raise IdentityChanged(subject_id) from e
            logger.warning(f"Role resolution failed for {subject_id}: {e.message}")
            entry = self._entries.get(subject_id)
            if entry is not None and not self.is_fresh(entry):
                # Past TTL and could not confirm: no role until a success
                del self._entries[subject_id]
            await self._report_failure(subject_id, e)
            raise
        else:
            if self._generation(subject_id) != generation:
                logger.info(f"Discarding role resolved for {subject_id}: signed out")
                raise IdentityChanged(subject_id)
            if self._inflight.get(subject_id) is not asyncio.current_task():
                raise _Superseded(subject_id)
            self._entries[subject_id] = CacheEntry(role=role, resolved_at=self.clock())
            return role
        finally:
            self._release(subject_id)

    def _revalidate_in_background(self, subject_id: str) -> None:
        if subject_id in self._inflight:
            return

        async def revalidate() -> None:
            try:
                await self._shared_resolution(subject_id)
            except AccessError as e:
                logger.debug(f"Background revalidation for {subject_id} ended: {e.message}")

        task = asyncio.create_task(revalidate())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _report_failure(self, subject_id: str, error: AccessError) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(Event(
            event_type=ROLE_RESOLUTION_FAILED,
            subject_id=subject_id,
            payload=error.to_dict(),
        ))

    async def drain(self) -> None:
        """Wait for background revalidations (used at shutdown and in tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
