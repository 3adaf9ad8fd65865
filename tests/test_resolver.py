"""
Tests for role resolution.

Core principle: one role per subject, highest source wins, and a source
that can't answer never counts as "no match".
"""

import asyncio

import pytest

from memberhub.access.errors import AuthorityUnavailable, Unauthorized
from memberhub.access.resolver import RoleResolver
from memberhub.core.models import ROLE_PRECEDENCE, CollectorMembership, Role


# =============================================================================
# Precedence
# =============================================================================


class TestPrecedence:
    def test_precedence_order(self):
        assert ROLE_PRECEDENCE == [Role.ADMIN, Role.COLLECTOR, Role.MEMBER, Role.NONE]
        assert Role.ADMIN.rank > Role.COLLECTOR.rank > Role.MEMBER.rank > Role.NONE.rank

    def test_checks_follow_precedence(self, resolver):
        assert [role for role, _ in resolver._checks] == ROLE_PRECEDENCE[:-1]

    @pytest.mark.asyncio
    async def test_admin_beats_collector(self, store, resolver):
        await store.add_assignment("u1", Role.ADMIN)
        await store.add_collector("u1", "J. Smith")

        assert await resolver.resolve("u1") == Role.ADMIN
        # Stops at the first match
        assert store.calls == [("find_role_assignment", "u1")]

    @pytest.mark.asyncio
    async def test_active_collector(self, store, resolver):
        await store.add_collector("u2", "J. Smith")
        await store.add_member("u2")

        assert await resolver.resolve("u2") == Role.COLLECTOR
        assert await resolver.resolve_collector_name("u2") == "J. Smith"

    @pytest.mark.asyncio
    async def test_inactive_collector_is_ignored(self, store, resolver):
        await store.add_collector("u3", "R. Green", active=False)
        await store.add_member("u3")

        assert await resolver.resolve("u3") == Role.MEMBER
        assert await resolver.resolve_collector_name("u3") is None

    @pytest.mark.asyncio
    async def test_member_assignment_without_record(self, store, resolver):
        await store.add_assignment("u4", Role.MEMBER)

        assert await resolver.resolve("u4") == Role.MEMBER
        assert store.count("find_member_record") == 0

    @pytest.mark.asyncio
    async def test_member_record_without_assignment(self, store, resolver):
        await store.add_member("u5")
        assert await resolver.resolve("u5") == Role.MEMBER

    @pytest.mark.asyncio
    async def test_nothing_resolves_to_none(self, store, resolver):
        assert await resolver.resolve("stranger") == Role.NONE
        assert store.calls == [
            ("find_role_assignment", "stranger"),
            ("find_active_collector_membership", "stranger"),
            ("find_role_assignment", "stranger"),
            ("find_member_record", "stranger"),
        ]

    @pytest.mark.asyncio
    async def test_store_returning_inactive_collector_does_not_count(self, store, resolver):
        async def leaky(subject_id):
            return CollectorMembership(
                subject_id=subject_id, member_number="TS00009", name="X", active=False
            )

        store.find_active_collector_membership = leaky
        assert await resolver.resolve("u6") == Role.NONE


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_failed_admin_lookup_does_not_fall_through(self, store, resolver):
        await store.add_member("u1")
        store.fail("find_role_assignment")

        with pytest.raises(AuthorityUnavailable) as exc:
            await resolver.resolve("u1")

        assert exc.value.subject_id == "u1"
        # Never reached the member record
        assert store.count("find_member_record") == 0

    @pytest.mark.asyncio
    async def test_failed_collector_lookup_raises(self, store, resolver):
        await store.add_member("u1")
        store.fail("find_active_collector_membership")

        with pytest.raises(AuthorityUnavailable):
            await resolver.resolve("u1")

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, store, resolver):
        await store.add_assignment("u1", Role.ADMIN)
        store.fail("find_role_assignment", times=1)

        assert await resolver.resolve("u1") == Role.ADMIN
        assert store.count("find_role_assignment") == 2

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, store, resolver):
        store.fail("find_role_assignment")

        with pytest.raises(AuthorityUnavailable):
            await resolver.resolve("u1")
        assert store.count("find_role_assignment") == resolver.max_attempts

    @pytest.mark.asyncio
    async def test_unauthorized_is_not_retried(self, store, resolver):
        store.fail(
            "find_role_assignment",
            error=Unauthorized("user_roles", "u1", "HTTP 403"),
        )

        with pytest.raises(Unauthorized):
            await resolver.resolve("u1")
        assert store.count("find_role_assignment") == 1

    @pytest.mark.asyncio
    async def test_store_error_carries_subject(self, store, resolver):
        store.fail("find_role_assignment", error=Unauthorized("user_roles", reason="HTTP 401"))

        with pytest.raises(Unauthorized) as exc:
            await resolver.resolve("u7")
        assert exc.value.subject_id == "u7"
        assert exc.value.to_dict()["subject_id"] == "u7"

    @pytest.mark.asyncio
    async def test_unexpected_store_error_becomes_unavailable(self, store, resolver):
        store.fail("find_role_assignment", error=RuntimeError("socket closed"))

        with pytest.raises(AuthorityUnavailable) as exc:
            await resolver.resolve("u1")
        assert "socket closed" in exc.value.reason

    @pytest.mark.asyncio
    async def test_timeout(self, store):
        store.gate = asyncio.Event()  # never opened
        resolver = RoleResolver(store, timeout=0.01, max_attempts=1, retry_wait=0)

        with pytest.raises(AuthorityUnavailable) as exc:
            await resolver.resolve("u1")
        assert "timed out" in exc.value.reason
