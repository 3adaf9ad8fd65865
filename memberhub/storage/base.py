"""
Storage abstraction layer.

Role resolution only ever talks to an AuthorityStore. Implementations can
sit on the in-memory metadata storage (development, tests) or on the
remote data platform's REST interface without the access core noticing.

Implementations must distinguish "no matching row" (return None) from
"could not answer" (raise AuthorityUnavailable / Unauthorized).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from memberhub.core.models import (
    CollectorMembership,
    MemberRecord,
    Role,
    RoleAssignment,
)


# =============================================================================
# Storage Interfaces
# =============================================================================


class MetadataStorage(ABC):
    """
    Storage for structured documents.

    Local Implementation: in-memory
    """

    @abstractmethod
    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Save a document to a collection."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a document by ID."""
        pass

    @abstractmethod
    async def delete(self, collection: str, id: str) -> bool:
        """Delete a document."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Query documents with optional filters."""
        pass


class AuthorityStore(ABC):
    """
    The three authority sources plus the secondary role store.

    Reads:
        find_role_assignment, find_active_collector_membership,
        find_member_record
    Sync write:
        upsert_secondary_role_record
    Administration:
        list_role_assignments, grant_role, revoke_role,
        save_collector_membership, list_member_records
    """

    # -------------------------------------------------------------------------
    # Reads used by role resolution
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_role_assignment(
        self,
        subject_id: str,
        role: Role | None = None,
    ) -> RoleAssignment | None:
        """Find an explicit role assignment, optionally for one role."""
        pass

    @abstractmethod
    async def find_active_collector_membership(
        self,
        subject_id: str,
    ) -> CollectorMembership | None:
        """Find the subject's collector membership with active=true."""
        pass

    @abstractmethod
    async def find_member_record(self, subject_id: str) -> MemberRecord | None:
        """Find the subject's member record."""
        pass

    # -------------------------------------------------------------------------
    # Sync write
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_secondary_role_record(self, subject_id: str, role: Role) -> None:
        """
        Write the denormalized role record for a subject.

        Raises:
            SyncWriteFailure: the write did not happen
        """
        pass

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_role_assignments(self, subject_id: str) -> list[RoleAssignment]:
        """All explicit role assignments held by a subject."""
        pass

    @abstractmethod
    async def grant_role(self, subject_id: str, role: Role) -> RoleAssignment:
        """Create a role assignment (no-op if one already exists)."""
        pass

    @abstractmethod
    async def revoke_role(self, subject_id: str, role: Role) -> bool:
        """Delete a role assignment. Returns False if there was none."""
        pass

    @abstractmethod
    async def save_collector_membership(
        self,
        membership: CollectorMembership,
    ) -> CollectorMembership:
        """Create or replace a collector membership."""
        pass

    @abstractmethod
    async def list_member_records(
        self,
        collector: str | None = None,
        limit: int = 100,
    ) -> list[MemberRecord]:
        """List member records, optionally only those of one collector."""
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for storage backends.

    Initialize once at app startup with appropriate implementations.
    """

    model_config = {"arbitrary_types_allowed": True}

    metadata: MetadataStorage | None = None
    authority: AuthorityStore


# =============================================================================
# Collection Names
# =============================================================================


class Collections:
    """Standard collection/table names, matching the data platform's tables."""

    USER_ROLES = "user_roles"
    MEMBERS_COLLECTORS = "members_collectors"
    MEMBERS = "members"
    SECONDARY_ROLES = "members_roles"
