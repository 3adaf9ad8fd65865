"""
Access context - the "who can see what" for each request.

This is the lightweight object passed to route handlers. It carries the
resolved role, or the reason the role could not be determined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from memberhub.access.cache import ResolutionCache
from memberhub.access.errors import AccessError
from memberhub.access.guard import allowed_tabs, can_access_tab, is_allowed
from memberhub.access.roles import RequireMode, Tab
from memberhub.core.models import Role

logger = logging.getLogger(__name__)


@dataclass
class AccessContext:
    """
    Authorization context for a request.

    Usage in routes:
        async def members(ctx: AccessContext = Depends(require_tab("users"))):
            if ctx.has_role(Role.ADMIN):
                ...
    """

    # Who
    subject_id: str | None = None

    # Resolved role; None means "could not be determined"
    role: Role | None = None
    error: AccessError | None = None

    # Extra context (collector name, etc.)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.subject_id is not None

    @property
    def is_undetermined(self) -> bool:
        """Signed in, but the role lookup failed (as opposed to role none)."""
        return self.is_authenticated and self.role is None

    @property
    def effective_role(self) -> Role:
        """The role used for decisions: undetermined counts as none."""
        return self.role or Role.NONE

    def has_role(self, role: Role | str) -> bool:
        return is_allowed(self.role, [role])

    def has_any_role(self, roles: Iterable[Role | str]) -> bool:
        return is_allowed(self.role, roles, RequireMode.ANY)

    def has_all_roles(self, roles: Iterable[Role | str]) -> bool:
        return is_allowed(self.role, roles, RequireMode.ALL)

    def can_access_tab(self, tab: Tab | str) -> bool:
        return can_access_tab(self.role, tab)

    @property
    def tabs(self) -> list[Tab]:
        return allowed_tabs(self.role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "role": self.role.value if self.role else None,
            "undetermined": self.is_undetermined,
            "tabs": [t.value for t in self.tabs],
        }

    @classmethod
    def anonymous(cls) -> AccessContext:
        """Create an anonymous context (no subject)."""
        return cls()


# =============================================================================
# Context Resolution
# =============================================================================


async def get_access_context(
    subject_id: str | None,
    cache: ResolutionCache,
) -> AccessContext:
    """
    Resolve the access context for a subject.

    Resolution errors are captured on the context rather than raised, so
    callers can tell "no access" apart from "could not check".
    """
    if not subject_id:
        return AccessContext.anonymous()

    try:
        role = await cache.get(subject_id)
    except AccessError as e:
        logger.warning(f"Access context for {subject_id} undetermined: {e.message}")
        return AccessContext(subject_id=subject_id, error=e)

    return AccessContext(subject_id=subject_id, role=role)
