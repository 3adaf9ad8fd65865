"""
Policies - route authorization on top of resolved roles.

Just use: `ctx: AccessContext = Depends(require_roles(Role.ADMIN))`

Design:
- each require_*() returns a FastAPI dependency that resolves to AccessContext
- it extracts the subject from the bearer token and resolves the role
  through the shared ResolutionCache
- no token -> 401; role undetermined -> 401 (treated like signed out,
  fail closed); role insufficient -> 403
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from memberhub.access.context import AccessContext, get_access_context
from memberhub.access.guard import can_access_tab, is_allowed
from memberhub.access.roles import RequireMode, Tab
from memberhub.access.runtime import AccessRuntime
from memberhub.access.tokens import TokenError, decode_token
from memberhub.config import get_settings
from memberhub.core.models import Role

UNDETERMINED_DETAIL = "Could not determine your access level. Please sign in again."


# =============================================================================
# Token Handling
# =============================================================================


# Optional bearer (doesn't fail if no token)
optional_bearer = HTTPBearer(auto_error=False)


async def get_subject_from_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> str | None:
    """
    Extract subject_id from the bearer token.

    Handles:
    - Real JWT tokens (validated with secret)
    - Dev tokens like "user_123" or "dev_abc" outside production
    """
    if not credentials:
        return None

    token = credentials.credentials

    try:
        return decode_token(token, expected_type="access").sub
    except TokenError:
        pass

    if not get_settings().is_production:
        if token.startswith("user_") or token.startswith("dev_"):
            return token

    return None


def get_runtime(request: Request) -> AccessRuntime:
    """The AccessRuntime attached to the app at startup."""
    return request.app.state.access


async def get_context(
    runtime: AccessRuntime = Depends(get_runtime),
    subject_id: str | None = Depends(get_subject_from_token),
) -> AccessContext:
    """Resolve the caller's AccessContext without enforcing anything."""
    return await get_access_context(subject_id, runtime.cache)


# =============================================================================
# Policy
# =============================================================================


class Policy:
    """
    A role requirement that can be checked.

        Policy(roles=[Role.ADMIN])                               # admin only
        Policy(roles=[Role.ADMIN, Role.COLLECTOR])               # either
        Policy(tab=Tab.FINANCE)                                  # tab table
    """

    def __init__(
        self,
        roles: list[Role | str] | None = None,
        mode: RequireMode = RequireMode.ANY,
        tab: Tab | str | None = None,
        require_auth: bool = True,
    ):
        self.roles = roles or []
        self.mode = mode
        self.tab = tab
        self.require_auth = require_auth

    @property
    def has_requirement(self) -> bool:
        return bool(self.roles) or self.tab is not None

    def check(self, ctx: AccessContext) -> tuple[bool, int, str | None]:
        """
        Check if context satisfies this policy.

        Returns: (allowed, status_code, error_message)
        """
        if self.require_auth and not ctx.is_authenticated:
            return False, 401, "Authentication required"

        if not self.has_requirement:
            return True, 200, None

        if ctx.is_undetermined:
            return False, 401, UNDETERMINED_DETAIL

        if self.roles and not is_allowed(ctx.role, self.roles, self.mode):
            names = [getattr(r, "value", r) for r in self.roles]
            joiner = " and " if self.mode == RequireMode.ALL else " or "
            return False, 403, f"Requires role {joiner.join(names)}"

        if self.tab is not None and not can_access_tab(ctx.role, self.tab):
            tab = getattr(self.tab, "value", self.tab)
            return False, 403, f"No access to {tab}"

        return True, 200, None


# =============================================================================
# Main Interface
# =============================================================================


def require_roles(
    *roles: Role | str,
    mode: RequireMode = RequireMode.ANY,
) -> Callable:
    """
    Require one of (or, with mode=ALL, every one of) the listed roles.

    Usage:
        @router.post("/sync")
        async def sync(ctx: AccessContext = Depends(require_roles(Role.ADMIN))):
            ...
    """
    return _create_dependency(Policy(roles=list(roles), mode=mode))


def require_tab(tab: Tab | str) -> Callable:
    """Require permission to open a navigation tab."""
    return _create_dependency(Policy(tab=tab))


def require_auth() -> Callable:
    """Just require a signed-in subject, no specific role."""
    return _create_dependency(Policy())


def _create_dependency(policy: Policy) -> Callable:
    """Create a FastAPI dependency from a policy."""

    async def dependency(ctx: AccessContext = Depends(get_context)) -> AccessContext:
        allowed, status_code, error = policy.check(ctx)
        if not allowed:
            raise HTTPException(status_code=status_code, detail=error)
        return ctx

    return dependency
