"""
Tests for access decisions: role checks, the tab table and the renderer.
"""

import pytest

from memberhub.access.context import AccessContext, get_access_context
from memberhub.access.errors import AuthorityUnavailable
from memberhub.access.guard import (
    RoleBasedRenderer,
    allowed_tabs,
    can_access_tab,
    is_allowed,
)
from memberhub.access.roles import RequireMode, Tab
from memberhub.core.models import Role


# =============================================================================
# is_allowed
# =============================================================================


class TestIsAllowed:
    def test_no_requirement_allows_everyone(self):
        assert is_allowed(Role.NONE, [])
        assert is_allowed(None, [])

    def test_any_mode(self):
        assert is_allowed(Role.COLLECTOR, [Role.ADMIN, Role.COLLECTOR])
        assert not is_allowed(Role.MEMBER, [Role.ADMIN, Role.COLLECTOR])

    def test_all_mode_single_role(self):
        assert is_allowed(Role.ADMIN, [Role.ADMIN], RequireMode.ALL)
        assert not is_allowed(Role.MEMBER, [Role.ADMIN], RequireMode.ALL)

    def test_all_mode_with_distinct_roles_never_matches(self):
        for role in Role:
            assert not is_allowed(role, [Role.ADMIN, Role.COLLECTOR], RequireMode.ALL)

    def test_strings_accepted(self):
        assert is_allowed("admin", ["admin", "collector"])
        assert is_allowed(Role.MEMBER, ["member"], "all")

    def test_single_role_requirement(self):
        assert is_allowed("admin", "admin")
        assert is_allowed(Role.COLLECTOR, Role.COLLECTOR, "all")
        assert not is_allowed(Role.MEMBER, "admin")

    def test_undetermined_is_treated_as_none(self):
        assert not is_allowed(None, [Role.MEMBER])
        assert is_allowed(None, [Role.NONE])


# =============================================================================
# Tabs
# =============================================================================


class TestTabs:
    def test_admin_opens_everything(self):
        assert all(can_access_tab(Role.ADMIN, tab) for tab in Tab)
        assert can_access_tab(Role.ADMIN, "some_future_tab")

    def test_collector(self):
        assert allowed_tabs(Role.COLLECTOR) == [Tab.DASHBOARD, Tab.USERS]
        assert not can_access_tab(Role.COLLECTOR, Tab.FINANCE)

    def test_member(self):
        assert allowed_tabs(Role.MEMBER) == [Tab.DASHBOARD]
        assert not can_access_tab(Role.MEMBER, "users")

    def test_none_and_undetermined(self):
        assert allowed_tabs(Role.NONE) == []
        assert allowed_tabs(None) == []
        assert not can_access_tab(None, Tab.DASHBOARD)

    def test_tab_names_are_case_insensitive(self):
        assert can_access_tab(Role.COLLECTOR, "Users")

    def test_unknown_tab_denied_for_non_admin(self):
        assert not can_access_tab(Role.COLLECTOR, "reports")


# =============================================================================
# RoleBasedRenderer
# =============================================================================


class TestRoleBasedRenderer:
    def test_renders_children_for_allowed_role(self):
        panel = RoleBasedRenderer(allowed_roles=[Role.ADMIN], fallback="no access")
        assert panel.render(Role.ADMIN, "finance") == "finance"

    def test_renders_fallback_for_none(self):
        panel = RoleBasedRenderer(allowed_roles=[Role.ADMIN, Role.COLLECTOR], fallback="no access")
        assert panel.render(Role.NONE, "users") == "no access"
        assert panel.render(None, "users") == "no access"

    def test_default_fallback_is_nothing(self):
        panel = RoleBasedRenderer(allowed_roles=[Role.ADMIN])
        assert panel.render(Role.MEMBER, "finance") is None

    def test_require_all_roles(self):
        panel = RoleBasedRenderer(
            allowed_roles=[Role.ADMIN, Role.COLLECTOR],
            require_all_roles=True,
            fallback="",
        )
        assert panel.mode == RequireMode.ALL
        assert panel.render(Role.ADMIN, "both") == ""

    def test_no_roles_renders_for_everyone(self):
        panel = RoleBasedRenderer()
        assert panel.allows(Role.NONE)


# =============================================================================
# AccessContext
# =============================================================================


class TestAccessContext:
    def test_anonymous(self):
        ctx = AccessContext.anonymous()
        assert not ctx.is_authenticated
        assert not ctx.is_undetermined
        assert ctx.tabs == []

    @pytest.mark.asyncio
    async def test_scenario_admin_and_collector(self, store, cache):
        await store.add_assignment("u1", Role.ADMIN)
        await store.add_collector("u1", "J. Smith")

        ctx = await get_access_context("u1", cache)

        assert ctx.role == Role.ADMIN
        assert ctx.can_access_tab(Tab.FINANCE)

    @pytest.mark.asyncio
    async def test_scenario_collector(self, store, cache):
        await store.add_collector("u2", "J. Smith")

        ctx = await get_access_context("u2", cache)

        assert ctx.role == Role.COLLECTOR
        assert ctx.has_any_role([Role.ADMIN, Role.COLLECTOR])
        assert [t.value for t in ctx.tabs] == ["dashboard", "users"]

    @pytest.mark.asyncio
    async def test_scenario_member_only(self, store, cache):
        await store.add_member("u3")

        ctx = await get_access_context("u3", cache)

        assert ctx.role == Role.MEMBER
        assert ctx.can_access_tab(Tab.DASHBOARD)
        assert not ctx.can_access_tab(Tab.USERS)

    @pytest.mark.asyncio
    async def test_scenario_nothing(self, store, cache):
        ctx = await get_access_context("u4", cache)
        panel = RoleBasedRenderer(allowed_roles=[Role.ADMIN, Role.COLLECTOR], fallback="fallback")

        assert ctx.role == Role.NONE
        assert panel.render(ctx.role, "children") == "fallback"

    @pytest.mark.asyncio
    async def test_undetermined_role(self, store, cache):
        await store.add_assignment("u5", Role.ADMIN)
        store.fail("find_role_assignment")

        ctx = await get_access_context("u5", cache)

        assert ctx.is_undetermined
        assert ctx.role is None
        assert ctx.effective_role == Role.NONE
        assert isinstance(ctx.error, AuthorityUnavailable)
        assert not ctx.has_role(Role.ADMIN)
        assert ctx.to_dict()["undetermined"] is True
        assert ctx.to_dict()["tabs"] == []
