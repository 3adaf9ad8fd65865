"""
Local storage implementations for development.

These are in-memory implementations that work without any external
services. The authority store reads and writes the same collections the
data platform exposes, so seed files and tests use realistic shapes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from memberhub.access.errors import SyncWriteFailure
from memberhub.core.models import (
    CollectorMembership,
    MemberRecord,
    Role,
    RoleAssignment,
)
from memberhub.core.utils import utc_now
from memberhub.storage.base import (
    AuthorityStore,
    Collections,
    MetadataStorage,
    StorageProvider,
)


# =============================================================================
# In-Memory Metadata Storage
# =============================================================================


class InMemoryMetadataStorage(MetadataStorage):
    """In-memory document storage for development."""

    def __init__(self):
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        if collection not in self._data:
            self._data[collection] = {}
        self._data[collection][id] = {
            **data,
            "_id": id,
            "_updated_at": datetime.now(timezone.utc).isoformat(),
        }

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        return self._data.get(collection, {}).get(id)

    async def delete(self, collection: str, id: str) -> bool:
        if collection in self._data and id in self._data[collection]:
            del self._data[collection][id]
            return True
        return False

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        if collection not in self._data:
            return []

        results = list(self._data[collection].values())

        if filters:
            results = [
                doc for doc in results
                if all(doc.get(key) == value for key, value in filters.items())
            ]

        return results[offset:offset + limit]


# =============================================================================
# Authority Store over MetadataStorage
# =============================================================================


def _strip(doc: dict[str, Any]) -> dict[str, Any]:
    """Drop storage bookkeeping fields."""
    return {k: v for k, v in doc.items() if not k.startswith("_")}


class MetadataAuthorityStore(AuthorityStore):
    """
    AuthorityStore backed by a MetadataStorage.

    Each authority source is its own collection; nothing is joined.
    """

    def __init__(self, metadata: MetadataStorage):
        self.metadata = metadata

    async def find_role_assignment(
        self,
        subject_id: str,
        role: Role | None = None,
    ) -> RoleAssignment | None:
        filters: dict[str, Any] = {"subject_id": subject_id}
        if role is not None:
            filters["role"] = role.value
        docs = await self.metadata.query(Collections.USER_ROLES, filters, limit=1)
        return RoleAssignment(**_strip(docs[0])) if docs else None

    async def find_active_collector_membership(
        self,
        subject_id: str,
    ) -> CollectorMembership | None:
        docs = await self.metadata.query(
            Collections.MEMBERS_COLLECTORS,
            {"subject_id": subject_id, "active": True},
            limit=1,
        )
        return CollectorMembership(**_strip(docs[0])) if docs else None

    async def find_member_record(self, subject_id: str) -> MemberRecord | None:
        docs = await self.metadata.query(
            Collections.MEMBERS, {"subject_id": subject_id}, limit=1
        )
        return MemberRecord(**_strip(docs[0])) if docs else None

    async def upsert_secondary_role_record(self, subject_id: str, role: Role) -> None:
        try:
            await self.metadata.save(
                Collections.SECONDARY_ROLES,
                subject_id,
                {
                    "subject_id": subject_id,
                    "role": role.value,
                    "synced_at": utc_now().isoformat(),
                },
            )
        except Exception as e:
            raise SyncWriteFailure(subject_id, str(e)) from e

    async def list_role_assignments(self, subject_id: str) -> list[RoleAssignment]:
        docs = await self.metadata.query(
            Collections.USER_ROLES, {"subject_id": subject_id}
        )
        return [RoleAssignment(**_strip(d)) for d in docs]

    async def grant_role(self, subject_id: str, role: Role) -> RoleAssignment:
        existing = await self.find_role_assignment(subject_id, role)
        if existing:
            return existing
        assignment = RoleAssignment(subject_id=subject_id, role=role)
        await self.metadata.save(
            Collections.USER_ROLES,
            assignment.id,
            assignment.model_dump(mode="json"),
        )
        return assignment

    async def revoke_role(self, subject_id: str, role: Role) -> bool:
        existing = await self.find_role_assignment(subject_id, role)
        if not existing:
            return False
        return await self.metadata.delete(Collections.USER_ROLES, existing.id)

    async def save_collector_membership(
        self,
        membership: CollectorMembership,
    ) -> CollectorMembership:
        await self.metadata.save(
            Collections.MEMBERS_COLLECTORS,
            membership.id,
            membership.model_dump(mode="json"),
        )
        return membership

    async def list_member_records(
        self,
        collector: str | None = None,
        limit: int = 100,
    ) -> list[MemberRecord]:
        filters = {"collector": collector} if collector else None
        docs = await self.metadata.query(Collections.MEMBERS, filters, limit=limit)
        members = [MemberRecord(**_strip(d)) for d in docs]
        return sorted(members, key=lambda m: m.created_at, reverse=True)

    async def get_secondary_role(self, subject_id: str) -> Role | None:
        """Read back a denormalized role record (used by tests and tooling)."""
        doc = await self.metadata.get(Collections.SECONDARY_ROLES, subject_id)
        return Role(doc["role"]) if doc else None


# =============================================================================
# Factory
# =============================================================================


def create_local_storage() -> StorageProvider:
    """Create a StorageProvider with local implementations."""
    metadata = InMemoryMetadataStorage()
    return StorageProvider(
        metadata=metadata,
        authority=MetadataAuthorityStore(metadata),
    )
