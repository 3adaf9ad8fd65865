"""
Access guard - turns a resolved role into allow/deny decisions.

Everything here is side-effect free: a denied check returns False (or the
fallback) and the caller decides whether to redirect, raise, or hide.

An undetermined role (None, e.g. because the authority store was down) is
treated exactly like Role.NONE, so failures close access rather than
open it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Iterable, TypeVar

from memberhub.access.roles import (
    TAB_PERMISSIONS,
    RequireMode,
    Tab,
    coerce_role,
    coerce_tab,
)
from memberhub.core.models import Role

T = TypeVar("T")


def is_allowed(
    role: Role | str | None,
    required_roles: Iterable[Role | str] = (),
    mode: RequireMode | str = RequireMode.ANY,
) -> bool:
    """
    Check a resolved role against a requirement.

    - No required roles: always allowed.
    - ANY: the role is one of the required roles.
    - ALL: the role equals every required role. A subject carries a single
      role, so an ALL requirement with more than one distinct role can
      never be met.
    """
    if isinstance(required_roles, str):  # a single role, Role included
        required_roles = [required_roles]
    required = [coerce_role(r) for r in required_roles]
    if not required:
        return True

    effective = coerce_role(role) or Role.NONE
    if RequireMode(mode) == RequireMode.ALL:
        return all(r == effective for r in required)
    return effective in required


def can_access_tab(role: Role | str | None, tab: Tab | str) -> bool:
    """
    Tab permission lookup.

    admin: every tab. collector: dashboard, users. member: dashboard.
    none / undetermined: nothing.
    """
    effective = coerce_role(role) or Role.NONE
    if effective == Role.ADMIN:
        return True
    return coerce_tab(tab) in TAB_PERMISSIONS.get(effective, frozenset())


def allowed_tabs(role: Role | str | None) -> list[Tab]:
    """All known tabs the role can open, in navigation order."""
    return [tab for tab in Tab if can_access_tab(role, tab)]


@dataclass
class RoleBasedRenderer(Generic[T]):
    """
    Declarative wrapper: render children when the role qualifies,
    otherwise the fallback.

    Usage:
        finance_panel = RoleBasedRenderer(allowed_roles=[Role.ADMIN], fallback=None)
        section = finance_panel.render(ctx.role, build_finance_section())
    """

    allowed_roles: list[Role | str] = field(default_factory=list)
    require_all_roles: bool = False
    fallback: T | None = None

    @property
    def mode(self) -> RequireMode:
        return RequireMode.ALL if self.require_all_roles else RequireMode.ANY

    def allows(self, role: Role | str | None) -> bool:
        return is_allowed(role, self.allowed_roles, self.mode)

    def render(self, role: Role | str | None, children: T) -> T | None:
        return children if self.allows(role) else self.fallback
