"""
Core module - fundamental data models and infrastructure.

This module contains:
- models: Authority records, roles and sync status records
- events: Event system for pub/sub communication
- utils: Shared utility functions
"""

from memberhub.core.models import (
    Role,
    ROLE_PRECEDENCE,
    ASSIGNABLE_ROLES,
    RoleAssignment,
    CollectorMembership,
    MemberRecord,
    MemberWithRoles,
    SyncStatus,
    SecondaryStoreStatus,
    SyncStatusRecord,
)

from memberhub.core.events import (
    Event,
    EventBus,
)

from memberhub.core.utils import (
    generate_id,
    utc_now,
)

__all__ = [
    # Models
    "Role",
    "ROLE_PRECEDENCE",
    "ASSIGNABLE_ROLES",
    "RoleAssignment",
    "CollectorMembership",
    "MemberRecord",
    "MemberWithRoles",
    "SyncStatus",
    "SecondaryStoreStatus",
    "SyncStatusRecord",
    # Events
    "Event",
    "EventBus",
    # Utils
    "generate_id",
    "utc_now",
]
