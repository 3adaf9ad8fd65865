"""
Tabs and the role -> tab permission table.

This defines WHAT each role can see, not HOW we check it.
The actual checking happens in guard.py.
"""

from __future__ import annotations

from enum import Enum

from memberhub.core.models import Role


class Tab(str, Enum):
    """Navigation tabs of the admin area."""

    DASHBOARD = "dashboard"
    USERS = "users"                  # Members list
    COLLECTORS = "collectors"
    REGISTRATIONS = "registrations"
    DATABASE = "database"
    FINANCE = "finance"
    SUPPORT = "support"
    PROFILE = "profile"


class RequireMode(str, Enum):
    """How a list of required roles is combined."""

    ANY = "any"
    ALL = "all"


# =============================================================================
# Permission Table
# =============================================================================


# Admin is not listed: admins can open every tab, including ones added later.
TAB_PERMISSIONS: dict[Role, frozenset[Tab]] = {
    Role.COLLECTOR: frozenset({Tab.DASHBOARD, Tab.USERS}),
    Role.MEMBER: frozenset({Tab.DASHBOARD}),
    Role.NONE: frozenset(),
}


def coerce_role(role: Role | str | None) -> Role | None:
    """Accept enum members or their string values. Unknown strings are None."""
    if role is None or isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def coerce_tab(tab: Tab | str) -> Tab | str:
    if isinstance(tab, Tab):
        return tab
    try:
        return Tab(tab.lower())
    except ValueError:
        return tab
