"""
Core data models for memberhub.

These are the records the access-control core reasons about: the three
authority sources (role assignments, collector memberships, member
records) and the per-subject sync status kept by the SyncCoordinator.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from memberhub.core.utils import generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class Role(str, Enum):
    """
    Resolved authorization role.

    The set is closed and totally ordered; see ROLE_PRECEDENCE.
    """

    ADMIN = "admin"          # Everything, including finance and sync
    COLLECTOR = "collector"  # Manages the members they collect from
    MEMBER = "member"        # Own dashboard only
    NONE = "none"            # Authenticated, but no standing

    @property
    def rank(self) -> int:
        """Higher is more privileged."""
        return len(ROLE_PRECEDENCE) - ROLE_PRECEDENCE.index(self)


# Highest first. Resolution walks this order and stops at the first match.
ROLE_PRECEDENCE: list[Role] = [Role.ADMIN, Role.COLLECTOR, Role.MEMBER, Role.NONE]

# Roles an administrator can grant explicitly
ASSIGNABLE_ROLES: list[Role] = [Role.ADMIN, Role.COLLECTOR, Role.MEMBER]


class SyncStatus(str, Enum):
    """Status of a subject's secondary-store reconciliation."""

    IDLE = "idle"            # Record exists, never triggered
    STARTED = "started"      # Reconciliation in flight
    COMPLETED = "completed"  # Secondary store matches resolved role
    FAILED = "failed"        # Last attempt failed, see error_message


class SecondaryStoreStatus(str, Enum):
    """Last known state of the denormalized role record."""

    UNKNOWN = "unknown"  # Never written by us
    READY = "ready"      # Written with the resolved role


# =============================================================================
# Authority Records
# =============================================================================


class RoleAssignment(BaseModel):
    """An explicit, administrator-granted role."""

    id: str = Field(default_factory=lambda: generate_id("role"))
    subject_id: str
    role: Role
    created_at: datetime = Field(default_factory=utc_now)


class CollectorMembership(BaseModel):
    """
    Collector status for a member.

    Only active records count during resolution.
    """

    id: str = Field(default_factory=lambda: generate_id("col"))
    subject_id: str
    member_number: str
    name: str
    prefix: str = ""
    number: str = ""
    email: str | None = None
    phone: str | None = None
    active: bool = True


class MemberRecord(BaseModel):
    """A registered member. Existence alone implies the member role."""

    id: str = Field(default_factory=lambda: generate_id("mem"))
    subject_id: str
    member_number: str
    full_name: str = ""
    email: str | None = None
    phone: str | None = None
    collector: str | None = None  # Display name of the collecting collector
    status: str = "pending"
    created_at: datetime = Field(default_factory=utc_now)


class MemberWithRoles(BaseModel):
    """A member together with their explicit role assignments."""

    member: MemberRecord
    roles: list[Role] = Field(default_factory=list)

    @property
    def is_collector(self) -> bool:
        return Role.COLLECTOR in self.roles


# =============================================================================
# Sync Status
# =============================================================================


# Allowed SyncStatusRecord transitions, keyed by current status
SYNC_TRANSITIONS: dict[SyncStatus, set[SyncStatus]] = {
    SyncStatus.IDLE: {SyncStatus.STARTED},
    SyncStatus.STARTED: {SyncStatus.COMPLETED, SyncStatus.FAILED},
    SyncStatus.FAILED: {SyncStatus.STARTED},
    SyncStatus.COMPLETED: {SyncStatus.STARTED},
}


class SyncStatusRecord(BaseModel):
    """
    The live reconciliation state for one subject.

    Created on first trigger, updated in place, never deleted. Only the
    latest state is kept.
    """

    subject_id: str
    status: SyncStatus = SyncStatus.IDLE

    # Timing
    started_at: datetime | None = None  # First attempt, kept across retries
    last_attempted_at: datetime | None = None
    completed_at: datetime | None = None

    # Outcome
    resolved_role: Role | None = None
    error_message: str | None = None
    secondary_store_status: SecondaryStoreStatus = SecondaryStoreStatus.UNKNOWN
    secondary_store_error: str | None = None

    def can_transition(self, to: SyncStatus) -> bool:
        return to in SYNC_TRANSITIONS[self.status]

    def transition(self, to: SyncStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidSyncTransition: the move is not one of the declared
                transitions. The record is left unchanged.
        """
        if not self.can_transition(to):
            from memberhub.access.errors import InvalidSyncTransition
            raise InvalidSyncTransition(self.subject_id, self.status, to)
        self.status = to
