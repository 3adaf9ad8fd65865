"""
Shared fixtures.

FakeAuthorityStore is the in-memory authority store with call recording,
fault injection and an optional gate that holds every store call until
the test opens it.
"""

from __future__ import annotations

import asyncio

import pytest

from memberhub.access.cache import ResolutionCache
from memberhub.access.errors import AuthorityUnavailable
from memberhub.access.resolver import RoleResolver
from memberhub.access.sync import SyncCoordinator
from memberhub.core.events import EventBus
from memberhub.core.models import CollectorMembership, MemberRecord, Role, RoleAssignment
from memberhub.core.utils import split_member_number
from memberhub.storage.base import Collections
from memberhub.storage.local import InMemoryMetadataStorage, MetadataAuthorityStore


class FakeAuthorityStore(MetadataAuthorityStore):
    """MetadataAuthorityStore that records calls and fails on request."""

    def __init__(self):
        super().__init__(InMemoryMetadataStorage())
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None
        self._faults: dict[tuple[str, str | None], list] = {}

    # -------------------------------------------------------------------------
    # Test controls
    # -------------------------------------------------------------------------

    def fail(
        self,
        method: str,
        error: Exception | None = None,
        times: int | None = None,
        subject_id: str | None = None,
    ) -> None:
        """Make `method` raise `error`, `times` times (None: until healed)."""
        error = error or AuthorityUnavailable(method, subject_id, "connection reset")
        self._faults[(method, subject_id)] = [error, times]

    def heal(self) -> None:
        self._faults.clear()

    def count(self, method: str, subject_id: str | None = None) -> int:
        return sum(
            1 for m, s in self.calls
            if m == method and (subject_id is None or s == subject_id)
        )

    async def _enter(self, method: str, subject_id: str) -> None:
        self.calls.append((method, subject_id))
        if self.gate is not None:
            await self.gate.wait()

        fault = self._faults.get((method, subject_id)) or self._faults.get((method, None))
        if fault is None:
            return
        error, remaining = fault
        if remaining is not None:
            if remaining <= 0:
                return
            fault[1] = remaining - 1
        raise error

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    async def add_assignment(self, subject_id: str, role: Role) -> None:
        assignment = RoleAssignment(subject_id=subject_id, role=role)
        await self.metadata.save(
            Collections.USER_ROLES, assignment.id, assignment.model_dump(mode="json")
        )

    async def add_collector(
        self,
        subject_id: str,
        name: str,
        member_number: str = "TS00001",
        active: bool = True,
    ) -> None:
        prefix, number = split_member_number(member_number)
        await super().save_collector_membership(CollectorMembership(
            subject_id=subject_id,
            member_number=member_number,
            name=name,
            prefix=prefix,
            number=number,
            active=active,
        ))

    async def add_member(
        self,
        subject_id: str,
        member_number: str = "TS00042",
        collector: str | None = None,
    ) -> MemberRecord:
        member = MemberRecord(
            subject_id=subject_id,
            member_number=member_number,
            full_name=subject_id.title(),
            collector=collector,
        )
        await self.metadata.save(
            Collections.MEMBERS, member.id, member.model_dump(mode="json")
        )
        return member

    # -------------------------------------------------------------------------
    # Instrumented store calls
    # -------------------------------------------------------------------------

    async def find_role_assignment(self, subject_id, role=None):
        await self._enter("find_role_assignment", subject_id)
        return await super().find_role_assignment(subject_id, role)

    async def find_active_collector_membership(self, subject_id):
        await self._enter("find_active_collector_membership", subject_id)
        return await super().find_active_collector_membership(subject_id)

    async def find_member_record(self, subject_id):
        await self._enter("find_member_record", subject_id)
        return await super().find_member_record(subject_id)

    async def upsert_secondary_role_record(self, subject_id, role):
        await self._enter("upsert_secondary_role_record", subject_id)
        return await super().upsert_secondary_role_record(subject_id, role)


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def wait_for_calls(store: FakeAuthorityStore, n: int = 1) -> None:
    """Yield to the loop until the store has seen at least n calls."""
    for _ in range(100):
        if len(store.calls) >= n:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"store saw {len(store.calls)} calls, expected {n}")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    return FakeAuthorityStore()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver(store):
    """Resolver with fast retries (2 attempts, no backoff)."""
    return RoleResolver(store, timeout=1.0, max_attempts=2, retry_wait=0)


@pytest.fixture
def cache(resolver, clock, bus):
    return ResolutionCache(
        resolver,
        ttl=60.0,
        stale_while_revalidate=True,
        clock=clock,
        event_bus=bus,
    )


@pytest.fixture
def coordinator(resolver, store, bus):
    return SyncCoordinator(resolver, store, event_bus=bus, max_concurrency=2)
