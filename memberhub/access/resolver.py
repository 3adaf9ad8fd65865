"""
Role resolution.

Turns a subject into exactly one Role by asking the authority sources in
precedence order:

    1. explicit "admin" role assignment            -> admin
    2. active collector membership                 -> collector
    3. explicit "member" assignment or member row  -> member
    4. nothing                                     -> none

Each check is its own remote call and runs only after the previous one
has answered. A source that fails to answer raises; it never counts as
"no match", so a flaky admin lookup cannot demote an admin to member.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from memberhub.access.errors import AccessError, AuthorityUnavailable
from memberhub.config import get_settings
from memberhub.core.models import Role
from memberhub.storage.base import AuthorityStore

logger = logging.getLogger(__name__)

# Source names used in errors and logs
SOURCE_ROLE_ASSIGNMENTS = "role_assignments"
SOURCE_COLLECTORS = "collector_memberships"
SOURCE_MEMBERS = "member_records"


class RoleResolver:
    """
    Pure decision component: reads only, no caching, no side effects.

    Args:
        store: The authority sources
        timeout: Seconds to wait for any single store call
        max_attempts: Total attempts per store call (reads are idempotent)
        retry_wait: Base backoff between attempts, in seconds
    """

    def __init__(
        self,
        store: AuthorityStore,
        timeout: float | None = None,
        max_attempts: int | None = None,
        retry_wait: float | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.timeout = timeout if timeout is not None else settings.authority_timeout_seconds
        self.max_attempts = max(1, max_attempts or settings.authority_retry_attempts)
        self.retry_wait = (
            retry_wait if retry_wait is not None else settings.authority_retry_wait_seconds
        )

        # One check per role above NONE, highest first
        self._checks: list[tuple[Role, Callable[[str], Awaitable[bool]]]] = [
            (Role.ADMIN, self._holds_admin_assignment),
            (Role.COLLECTOR, self._is_active_collector),
            (Role.MEMBER, self._has_member_standing),
        ]

    async def resolve(self, subject_id: str) -> Role:
        """
        Resolve the subject's role.

        Raises:
            AuthorityUnavailable: a source could not answer (after retries)
            Unauthorized: a source refused to answer
        """
        for role, check in self._checks:
            if await check(subject_id):
                logger.info(f"Resolved role for {subject_id}: {role.value}")
                return role

        logger.info(f"No role found for {subject_id}")
        return Role.NONE

    async def resolve_collector_name(self, subject_id: str) -> str | None:
        """Display name of the subject's active collector membership, if any."""
        membership = await self._call(
            SOURCE_COLLECTORS,
            subject_id,
            lambda: self.store.find_active_collector_membership(subject_id),
        )
        if membership is None or not membership.active:
            return None
        return membership.name or None

    # =========================================================================
    # Checks
    # =========================================================================

    async def _holds_admin_assignment(self, subject_id: str) -> bool:
        assignment = await self._call(
            SOURCE_ROLE_ASSIGNMENTS,
            subject_id,
            lambda: self.store.find_role_assignment(subject_id, Role.ADMIN),
        )
        return assignment is not None and assignment.role == Role.ADMIN

    async def _is_active_collector(self, subject_id: str) -> bool:
        membership = await self._call(
            SOURCE_COLLECTORS,
            subject_id,
            lambda: self.store.find_active_collector_membership(subject_id),
        )
        if membership is None:
            return False
        if not membership.active:
            # Store ignored the filter; an inactive record never counts.
            logger.warning(f"Store returned inactive collector record for {subject_id}")
            return False
        logger.debug(f"{subject_id} is collector {membership.name!r}")
        return True

    async def _has_member_standing(self, subject_id: str) -> bool:
        assignment = await self._call(
            SOURCE_ROLE_ASSIGNMENTS,
            subject_id,
            lambda: self.store.find_role_assignment(subject_id, Role.MEMBER),
        )
        if assignment is not None and assignment.role == Role.MEMBER:
            return True

        record = await self._call(
            SOURCE_MEMBERS,
            subject_id,
            lambda: self.store.find_member_record(subject_id),
        )
        return record is not None

    # =========================================================================
    # Store calls: timeout + bounded retry
    # =========================================================================

    async def _call(
        self,
        source: str,
        subject_id: str,
        query: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run one store query, retrying only on AuthorityUnavailable."""
        result = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=self.retry_wait * 4),
            retry=retry_if_exception_type(AuthorityUnavailable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        f"Retrying {source} for {subject_id} "
                        f"(attempt {attempt.retry_state.attempt_number})"
                    )
                result = await self._bounded(source, subject_id, query)
        return result

    async def _bounded(
        self,
        source: str,
        subject_id: str,
        query: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            return await asyncio.wait_for(query(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{source} timed out for {subject_id} after {self.timeout}s")
            raise AuthorityUnavailable(
                source, subject_id, f"timed out after {self.timeout}s"
            ) from e
        except AccessError as e:
            e.subject_id = e.subject_id or subject_id
            logger.warning(f"{source} failed for {subject_id}: {e.message}")
            raise
        except Exception as e:
            logger.warning(f"{source} raised for {subject_id}: {e!r}")
            raise AuthorityUnavailable(source, subject_id, repr(e)) from e
