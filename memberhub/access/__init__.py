"""
Role resolution and access control.

Pieces:
1. RoleResolver - one precedence-ordered lookup against the authority store
2. ResolutionCache - TTL, single-flight, identity-aware invalidation
3. SyncCoordinator - secondary role store reconciliation with status
4. Guard - pure allow/deny decisions, tab table, declarative renderer

FastAPI dependencies live in memberhub.access.policies and the HTTP routes
in memberhub.access.routes; both need a wired AccessRuntime
(memberhub.access.runtime.create_runtime).
"""

from memberhub.access.errors import (
    AccessError,
    AuthorityUnavailable,
    Unauthorized,
    SyncWriteFailure,
    IdentityChanged,
    InvalidSyncTransition,
)
from memberhub.access.roles import (
    Tab,
    RequireMode,
    TAB_PERMISSIONS,
)
from memberhub.access.guard import (
    is_allowed,
    can_access_tab,
    allowed_tabs,
    RoleBasedRenderer,
)
from memberhub.access.resolver import RoleResolver
from memberhub.access.cache import CacheEntry, ResolutionCache
from memberhub.access.context import AccessContext, get_access_context
from memberhub.access.sync import SyncCoordinator
from memberhub.access.tokens import (
    TokenPair,
    TokenError,
    create_token_pair,
    decode_token,
)
from memberhub.access.session import SessionProvider
from memberhub.access.admin import RoleAdministration, RoleAdministrationError

__all__ = [
    # Errors
    "AccessError",
    "AuthorityUnavailable",
    "Unauthorized",
    "SyncWriteFailure",
    "IdentityChanged",
    "InvalidSyncTransition",
    # Guard
    "Tab",
    "RequireMode",
    "TAB_PERMISSIONS",
    "is_allowed",
    "can_access_tab",
    "allowed_tabs",
    "RoleBasedRenderer",
    # Resolution
    "RoleResolver",
    "CacheEntry",
    "ResolutionCache",
    "AccessContext",
    "get_access_context",
    # Sync
    "SyncCoordinator",
    # Session
    "TokenPair",
    "TokenError",
    "create_token_pair",
    "decode_token",
    "SessionProvider",
    # Administration
    "RoleAdministration",
    "RoleAdministrationError",
]
