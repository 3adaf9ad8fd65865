"""
Seed data loader.

Loads a YAML file of role assignments, collectors and members into the
local authority store, so the in-memory backend starts with realistic
data in development.

File format:
    role_assignments:
      - {subject_id: user_admin, role: admin}
    collectors:
      - {subject_id: user_js, member_number: TS00001, name: J. Smith}
    members:
      - {subject_id: user_m1, member_number: TS00042, full_name: Ann Lee, collector: J. Smith}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from memberhub.core.models import CollectorMembership, MemberRecord, Role
from memberhub.core.utils import split_member_number
from memberhub.storage.base import AuthorityStore, Collections, MetadataStorage

logger = logging.getLogger(__name__)


class SeedError(Exception):
    """Raised when a seed file can't be loaded."""
    pass


class SeedLoader:
    """
    Loads seed files into an authority store.

    Members are written straight to metadata storage (the authority
    store has no member-creation operation; registration owns that).
    """

    def __init__(self, store: AuthorityStore, metadata: MetadataStorage):
        self.store = store
        self.metadata = metadata

    async def load_file(self, path: Path | str) -> dict[str, int]:
        path = Path(path)
        if not path.exists():
            raise SeedError(f"Seed file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise SeedError(f"Seed file must contain a mapping: {path}")

        counts = await self.load(data)
        logger.info(f"Loaded seed data from {path}: {counts}")
        return counts

    async def load(self, data: dict[str, Any]) -> dict[str, int]:
        """
        Load already-parsed seed data.

        Returns:
            Dict with counts of each record type loaded
        """
        counts = {"role_assignments": 0, "collectors": 0, "members": 0}

        for item in data.get("role_assignments") or []:
            await self.store.grant_role(item["subject_id"], Role(item["role"]))
            counts["role_assignments"] += 1

        for item in data.get("collectors") or []:
            prefix, number = split_member_number(item["member_number"])
            membership = CollectorMembership(
                prefix=item.get("prefix", prefix),
                number=item.get("number", number),
                **{k: v for k, v in item.items() if k not in ("prefix", "number")},
            )
            await self.store.save_collector_membership(membership)
            counts["collectors"] += 1

        for item in data.get("members") or []:
            member = MemberRecord(**item)
            await self.metadata.save(
                Collections.MEMBERS, member.id, member.model_dump(mode="json")
            )
            counts["members"] += 1

        return counts
