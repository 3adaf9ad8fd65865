# =============================================================================
# Access API Routes
# =============================================================================
#
# Endpoints:
#   GET    /access/me                       - Resolved role and tabs
#   GET    /access/tabs/{tab}               - Can the caller open a tab
#   GET    /access/notices                  - Caller's failure notices
#   GET    /access/members                  - Members (admin: all, collector: own)
#   POST   /access/roles/{subject_id}       - Add/remove a role (admin)
#   POST   /access/collectors/{subject_id}  - Assign collector (admin)
#   DELETE /access/collectors/{subject_id}  - Deactivate collector (admin)
#   POST   /access/sync                     - Reconcile secondary store (admin)
#   GET    /access/sync                     - Sync status (admin)
#   POST   /access/sync/{subject_id}/retry  - Retry a failed sync (admin)
#
# Session:
#   POST /session/sign-in   - Issue tokens (non-production only)
#   POST /session/refresh   - Refresh tokens
#   POST /session/sign-out  - Sign out (evicts the cached role)
#
# =============================================================================

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from memberhub.access.admin import RoleAdministrationError
from memberhub.access.context import AccessContext
from memberhub.access.errors import AccessError, InvalidSyncTransition
from memberhub.access.policies import (
    get_runtime,
    require_auth,
    require_roles,
    require_tab,
)
from memberhub.access.roles import Tab
from memberhub.access.runtime import AccessRuntime
from memberhub.access.tokens import TokenExpiredError, TokenInvalidError, TokenPair
from memberhub.core.models import Role

router = APIRouter(prefix="/access", tags=["access"])
session_router = APIRouter(prefix="/session", tags=["session"])


# =============================================================================
# Request/Response Models
# =============================================================================

class RoleChangeRequest(BaseModel):
    role: Role
    action: Literal["add", "remove"] = "add"


class CollectorAssignRequest(BaseModel):
    member_number: str = Field(min_length=3)
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class SyncRequest(BaseModel):
    subject_ids: list[str] = Field(min_length=1)


class SignInRequest(BaseModel):
    subject_id: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


def _unavailable(error: AccessError) -> HTTPException:
    return HTTPException(status_code=503, detail=error.message)


# =============================================================================
# Caller
# =============================================================================

@router.get("/me")
async def me(ctx: AccessContext = Depends(require_auth())):
    """
    The caller's resolved role and the tabs it opens.

    An undetermined role is reported as such (role null, no tabs), never
    as a default role.
    """
    return ctx.to_dict()


@router.get("/tabs/{tab}")
async def check_tab(tab: str, ctx: AccessContext = Depends(require_auth())):
    return {"tab": tab, "allowed": ctx.can_access_tab(tab)}


@router.get("/notices")
async def list_notices(
    limit: int = 20,
    ctx: AccessContext = Depends(require_auth()),
    runtime: AccessRuntime = Depends(get_runtime),
):
    """The caller's recent failure notices. Admins also see sync failures for others."""
    subject_id = None if ctx.role == Role.ADMIN else ctx.subject_id
    notices = runtime.notifications.notices(subject_id, limit=limit)
    return [n.to_dict() for n in notices]


# =============================================================================
# Members
# =============================================================================

@router.get("/members")
async def list_members(
    limit: int = 100,
    ctx: AccessContext = Depends(require_tab(Tab.USERS)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    """
    Members with their role assignments, newest first.

    Admins see everyone. Collectors see only the members assigned to
    them; a collector whose membership has no name sees nobody.
    """
    collector = None
    if ctx.role != Role.ADMIN:
        try:
            collector = await runtime.resolver.resolve_collector_name(ctx.subject_id)
        except AccessError as e:
            raise _unavailable(e)
        if collector is None:
            return []

    try:
        members = await runtime.admin.list_members_with_roles(collector=collector, limit=limit)
    except AccessError as e:
        raise _unavailable(e)
    return [m.model_dump(mode="json") for m in members]


# =============================================================================
# Role Administration
# =============================================================================

@router.post("/roles/{subject_id}")
async def change_role(
    subject_id: str,
    data: RoleChangeRequest,
    ctx: AccessContext = Depends(require_roles(Role.ADMIN)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    try:
        if data.action == "add":
            assignment = await runtime.admin.grant_role(subject_id, data.role)
            return assignment.model_dump(mode="json")
        removed = await runtime.admin.revoke_role(subject_id, data.role)
    except RoleAdministrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AccessError as e:
        raise _unavailable(e)

    if not removed:
        raise HTTPException(status_code=404, detail="Role assignment not found")
    return {"message": f"Removed {data.role.value} from {subject_id}"}


@router.post("/collectors/{subject_id}")
async def assign_collector(
    subject_id: str,
    data: CollectorAssignRequest,
    ctx: AccessContext = Depends(require_roles(Role.ADMIN)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    try:
        membership = await runtime.admin.assign_collector(
            subject_id,
            data.member_number,
            name=data.name,
            email=data.email,
            phone=data.phone,
        )
    except RoleAdministrationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AccessError as e:
        raise _unavailable(e)
    return membership.model_dump(mode="json")


@router.delete("/collectors/{subject_id}")
async def deactivate_collector(
    subject_id: str,
    ctx: AccessContext = Depends(require_roles(Role.ADMIN)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    try:
        deactivated = await runtime.admin.deactivate_collector(subject_id)
    except AccessError as e:
        raise _unavailable(e)
    if not deactivated:
        raise HTTPException(status_code=404, detail="No active collector membership")
    return {"message": f"Deactivated collector {subject_id}"}


# =============================================================================
# Sync
# =============================================================================

@router.post("/sync", status_code=202)
async def trigger_sync(
    data: SyncRequest,
    ctx: AccessContext = Depends(require_roles(Role.ADMIN)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    """Start reconciling the given subjects. Returns their current records."""
    records = await runtime.coordinator.trigger(data.subject_ids)
    return [r.model_dump(mode="json") for r in records]


@router.get("/sync")
async def sync_status(
    ctx: AccessContext = Depends(require_roles(Role.ADMIN)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    return {
        "records": [r.model_dump(mode="json") for r in runtime.coordinator.statuses()],
        "summary": runtime.coordinator.summary(),
    }


@router.post("/sync/{subject_id}/retry", status_code=202)
async def retry_sync(
    subject_id: str,
    ctx: AccessContext = Depends(require_roles(Role.ADMIN)),
    runtime: AccessRuntime = Depends(get_runtime),
):
    try:
        record = await runtime.coordinator.retry(subject_id)
    except InvalidSyncTransition as e:
        raise HTTPException(status_code=409, detail=e.message)
    return record.model_dump(mode="json")


# =============================================================================
# Session
# =============================================================================

@session_router.post("/sign-in", response_model=TokenPair)
async def sign_in(
    data: SignInRequest,
    runtime: AccessRuntime = Depends(get_runtime),
):
    """
    Issue tokens for a subject.

    Development only: in production, identities come from the external
    identity provider.
    """
    if runtime.settings.is_production:
        raise HTTPException(status_code=404, detail="Not found")
    return await runtime.session.sign_in(data.subject_id)


@session_router.post("/refresh", response_model=TokenPair)
async def refresh(
    data: RefreshRequest,
    runtime: AccessRuntime = Depends(get_runtime),
):
    try:
        return await runtime.session.refresh(data.refresh_token)
    except TokenExpiredError:
        raise HTTPException(status_code=401, detail="Refresh token expired, please sign in again")
    except TokenInvalidError as e:
        raise HTTPException(status_code=401, detail=str(e))


@session_router.post("/sign-out")
async def sign_out(
    ctx: AccessContext = Depends(require_auth()),
    runtime: AccessRuntime = Depends(get_runtime),
):
    await runtime.session.sign_out(ctx.subject_id)
    return {"message": "Signed out"}
