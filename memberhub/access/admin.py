"""
Role administration.

Administrative writes to the authority sources: granting and revoking
explicit roles and assigning collectors. Every change is announced as a
role.changed event, which is what evicts the subject's cached role.
"""

from __future__ import annotations

import logging

from memberhub.core.events import EventBus, role_changed
from memberhub.core.models import (
    ASSIGNABLE_ROLES,
    CollectorMembership,
    MemberWithRoles,
    Role,
    RoleAssignment,
)
from memberhub.core.utils import split_member_number
from memberhub.storage.base import AuthorityStore

logger = logging.getLogger(__name__)


class RoleAdministrationError(Exception):
    """Raised for invalid administrative requests."""
    pass


class RoleAdministration:
    """Grant/revoke roles and manage collector memberships."""

    def __init__(self, store: AuthorityStore, event_bus: EventBus):
        self.store = store
        self.event_bus = event_bus

    async def grant_role(self, subject_id: str, role: Role) -> RoleAssignment:
        if role not in ASSIGNABLE_ROLES:
            raise RoleAdministrationError(f"Role '{role.value}' cannot be assigned")

        assignment = await self.store.grant_role(subject_id, role)
        logger.info(f"Granted {role.value} to {subject_id}")
        await self.event_bus.publish(role_changed(subject_id, role.value, "add"))
        return assignment

    async def revoke_role(self, subject_id: str, role: Role) -> bool:
        removed = await self.store.revoke_role(subject_id, role)
        if removed:
            logger.info(f"Revoked {role.value} from {subject_id}")
            await self.event_bus.publish(role_changed(subject_id, role.value, "remove"))
        return removed

    async def assign_collector(
        self,
        subject_id: str,
        member_number: str,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> CollectorMembership:
        """
        Make a member a collector.

        The collector prefix and number come from the member number
        ("TS00012" -> "TS", "00012"); the display name defaults to the
        member number.
        """
        member_number = member_number.strip().upper()
        if len(member_number) < 3:
            raise RoleAdministrationError(f"Invalid member number: {member_number!r}")

        prefix, number = split_member_number(member_number)
        membership = CollectorMembership(
            subject_id=subject_id,
            member_number=member_number,
            name=name or member_number,
            prefix=prefix,
            number=number,
            email=email,
            phone=phone,
            active=True,
        )
        await self.store.save_collector_membership(membership)
        await self.store.grant_role(subject_id, Role.COLLECTOR)

        logger.info(f"Assigned collector {membership.name!r} to {subject_id}")
        await self.event_bus.publish(
            role_changed(subject_id, Role.COLLECTOR.value, "add", collector=membership.name)
        )
        return membership

    async def deactivate_collector(self, subject_id: str) -> bool:
        """Mark the subject's active collector membership inactive."""
        membership = await self.store.find_active_collector_membership(subject_id)
        if membership is None:
            return False

        membership.active = False
        await self.store.save_collector_membership(membership)
        await self.store.revoke_role(subject_id, Role.COLLECTOR)

        logger.info(f"Deactivated collector {membership.name!r} for {subject_id}")
        await self.event_bus.publish(
            role_changed(subject_id, Role.COLLECTOR.value, "remove", collector=membership.name)
        )
        return True

    async def list_members_with_roles(
        self,
        collector: str | None = None,
        limit: int = 100,
    ) -> list[MemberWithRoles]:
        """Members (newest first) with their explicit role assignments."""
        members = await self.store.list_member_records(collector=collector, limit=limit)
        results = []
        for member in members:
            assignments = (
                await self.store.list_role_assignments(member.subject_id)
                if member.subject_id else []
            )
            results.append(MemberWithRoles(
                member=member,
                roles=[a.role for a in assignments],
            ))
        return results
