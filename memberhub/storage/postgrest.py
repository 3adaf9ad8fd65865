# =============================================================================
# PostgREST Authority Store
# =============================================================================
#
# Reads and writes the data platform's tables over its REST interface:
#   user_roles          (user_id, role, created_at)
#   members_collectors  (member_profile_id, name, prefix, number, active, ...)
#   members             (auth_user_id, member_number, full_name, collector, ...)
#   members_roles       (user_id, role, updated_at)   <- secondary store
#
# Setup:
#   AUTHORITY_BACKEND=postgrest
#   AUTHORITY_URL=https://<project>.supabase.co
#   AUTHORITY_API_KEY=<service key>
#
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

import httpx

from memberhub.access.errors import AuthorityUnavailable, SyncWriteFailure, Unauthorized
from memberhub.config import get_settings
from memberhub.core.models import (
    CollectorMembership,
    MemberRecord,
    Role,
    RoleAssignment,
)
from memberhub.core.utils import split_member_number, utc_now
from memberhub.storage.base import AuthorityStore, Collections

logger = logging.getLogger(__name__)


# =============================================================================
# Row mapping (platform columns -> our records)
# =============================================================================


def _role_assignment(row: dict[str, Any]) -> RoleAssignment:
    return RoleAssignment(
        id=str(row.get("id", "")) or f"{row['user_id']}:{row['role']}",
        subject_id=row["user_id"],
        role=Role(row["role"]),
        created_at=row.get("created_at") or utc_now(),
    )


def _collector(row: dict[str, Any]) -> CollectorMembership:
    return CollectorMembership(
        id=str(row.get("id", "")) or row["member_profile_id"],
        subject_id=row["member_profile_id"],
        member_number=row.get("member_number") or f"{row.get('prefix', '')}{row.get('number', '')}",
        name=row.get("name") or "",
        prefix=row.get("prefix") or "",
        number=row.get("number") or "",
        email=row.get("email"),
        phone=row.get("phone"),
        active=bool(row.get("active")),
    )


def _member(row: dict[str, Any]) -> MemberRecord:
    return MemberRecord(
        id=str(row["id"]),
        subject_id=row.get("auth_user_id") or "",
        member_number=row.get("member_number") or "",
        full_name=row.get("full_name") or "",
        email=row.get("email"),
        phone=row.get("phone"),
        collector=row.get("collector"),
        status=row.get("status") or "pending",
        created_at=row.get("created_at") or utc_now(),
    )


# =============================================================================
# Store
# =============================================================================


class PostgrestAuthorityStore(AuthorityStore):
    """
    AuthorityStore over a PostgREST endpoint.

    Status mapping:
        200/201/204    -> rows (empty list means "no match")
        401/403        -> Unauthorized (explicit denial, never retried)
        anything else  -> AuthorityUnavailable
        network errors -> AuthorityUnavailable
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.authority_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.authority_api_key
        self.timeout = timeout or settings.authority_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        table: str,
        subject_id: str | None,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        try:
            response = await self.client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning(f"Request to {table} failed for {subject_id}: {e!r}")
            raise AuthorityUnavailable(table, subject_id, str(e) or type(e).__name__) from e

        if response.status_code in (401, 403):
            raise Unauthorized(table, subject_id, f"HTTP {response.status_code}")
        if response.status_code >= 300:
            logger.warning(
                f"{table} returned {response.status_code} for {subject_id}: {response.text}"
            )
            raise AuthorityUnavailable(table, subject_id, f"HTTP {response.status_code}")

        if response.status_code == 204 or not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def _select(
        self,
        table: str,
        subject_id: str | None,
        filters: dict[str, str],
        limit: int = 1,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {"select": "*", "limit": str(limit), **filters}
        if order:
            params["order"] = order
        return await self._request("GET", table, subject_id, params=params)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def find_role_assignment(
        self,
        subject_id: str,
        role: Role | None = None,
    ) -> RoleAssignment | None:
        filters = {"user_id": f"eq.{subject_id}"}
        if role is not None:
            filters["role"] = f"eq.{role.value}"
        rows = await self._select(Collections.USER_ROLES, subject_id, filters)
        return _role_assignment(rows[0]) if rows else None

    async def find_active_collector_membership(
        self,
        subject_id: str,
    ) -> CollectorMembership | None:
        rows = await self._select(
            Collections.MEMBERS_COLLECTORS,
            subject_id,
            {"member_profile_id": f"eq.{subject_id}", "active": "eq.true"},
        )
        return _collector(rows[0]) if rows else None

    async def find_member_record(self, subject_id: str) -> MemberRecord | None:
        rows = await self._select(
            Collections.MEMBERS, subject_id, {"auth_user_id": f"eq.{subject_id}"}
        )
        return _member(rows[0]) if rows else None

    # -------------------------------------------------------------------------
    # Sync write
    # -------------------------------------------------------------------------

    async def upsert_secondary_role_record(self, subject_id: str, role: Role) -> None:
        try:
            await self._request(
                "POST",
                Collections.SECONDARY_ROLES,
                subject_id,
                params={"on_conflict": "user_id"},
                json={
                    "user_id": subject_id,
                    "role": role.value,
                    "updated_at": utc_now().isoformat(),
                },
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
        except (AuthorityUnavailable, Unauthorized) as e:
            raise SyncWriteFailure(subject_id, e.message) from e

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    async def list_role_assignments(self, subject_id: str) -> list[RoleAssignment]:
        rows = await self._select(
            Collections.USER_ROLES, subject_id, {"user_id": f"eq.{subject_id}"}, limit=50
        )
        return [_role_assignment(r) for r in rows]

    async def grant_role(self, subject_id: str, role: Role) -> RoleAssignment:
        existing = await self.find_role_assignment(subject_id, role)
        if existing:
            return existing
        rows = await self._request(
            "POST",
            Collections.USER_ROLES,
            subject_id,
            json={"user_id": subject_id, "role": role.value},
            headers={"Prefer": "return=representation"},
        )
        if rows:
            return _role_assignment(rows[0])
        return RoleAssignment(subject_id=subject_id, role=role)

    async def revoke_role(self, subject_id: str, role: Role) -> bool:
        rows = await self._request(
            "DELETE",
            Collections.USER_ROLES,
            subject_id,
            params={"user_id": f"eq.{subject_id}", "role": f"eq.{role.value}"},
            headers={"Prefer": "return=representation"},
        )
        return bool(rows)

    async def save_collector_membership(
        self,
        membership: CollectorMembership,
    ) -> CollectorMembership:
        prefix, number = split_member_number(membership.member_number)
        await self._request(
            "POST",
            Collections.MEMBERS_COLLECTORS,
            membership.subject_id,
            params={"on_conflict": "member_profile_id"},
            json={
                "member_profile_id": membership.subject_id,
                "member_number": membership.member_number,
                "name": membership.name,
                "prefix": membership.prefix or prefix,
                "number": membership.number or number,
                "email": membership.email,
                "phone": membership.phone,
                "active": membership.active,
            },
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        return membership

    async def list_member_records(
        self,
        collector: str | None = None,
        limit: int = 100,
    ) -> list[MemberRecord]:
        filters = {"collector": f"eq.{collector}"} if collector else {}
        rows = await self._select(
            Collections.MEMBERS, None, filters, limit=limit, order="created_at.desc"
        )
        return [_member(r) for r in rows]
