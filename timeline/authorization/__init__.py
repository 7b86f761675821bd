"""
Authorization Layer

RESPONSIBILITY: Map (email, tenant, road) to an access level
ALLOWED INPUTS: A membership source and group naming rules
OUTPUTS: bool decisions, AccessLevel

WHAT THIS LAYER MUST NOT DO:
============================
- Call the directory per request (the membership source is the cache or
  the in-memory stand-in)
- Raise on membership failures
- Grant a level that no membership confirmed

LEVEL ORDER:
============
ROAD_USER < TENANT_USER < TENANT_MANAGER < GLOBAL

Membership in a level's group satisfies that level and every level below
it within the same tenant. The demo tenant is open to everyone.
"""

from __future__ import annotations
from enum import IntEnum
from typing import List, Optional
import logging
import uuid

from ..contracts.base import sanitize_for_log
from ..directory.names import GroupNames


logger = logging.getLogger(__name__)

DEMO_TENANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DEMO_ROAD_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")


class AccessLevel(IntEnum):
    """Hierarchical access levels, lowest first."""
    ROAD_USER = 0
    TENANT_USER = 1
    TENANT_MANAGER = 2
    GLOBAL = 3


class MembershipSource:
    """Anything that can answer a membership question by email and group name."""

    async def is_user_in_group(self, user_email: str, group_name: str) -> bool:
        raise NotImplementedError


class AuthorizationResolver:
    """
    Computes access decisions from group membership.

    A None naming scheme means the group prefix was misconfigured: only
    the demo tenant is reachable.
    """

    def __init__(
        self,
        membership: MembershipSource,
        names: Optional[GroupNames],
        demo_tenant_id: uuid.UUID = DEMO_TENANT_ID
    ):
        self._membership = membership
        self._names = names
        self._demo_tenant_id = demo_tenant_id

    @property
    def demo_tenant_id(self) -> uuid.UUID:
        return self._demo_tenant_id

    def _group_for(
        self,
        level: AccessLevel,
        tenant_id: uuid.UUID,
        road_id: Optional[uuid.UUID]
    ) -> Optional[str]:
        names = self._names
        if level is AccessLevel.GLOBAL:
            return names.global_admins
        if level is AccessLevel.TENANT_MANAGER:
            return names.tenant_manager(tenant_id)
        if level is AccessLevel.TENANT_USER:
            return names.tenant_user(tenant_id)
        if road_id is None:
            return None
        return names.road_user(tenant_id, road_id)

    def candidate_groups(
        self,
        tenant_id: uuid.UUID,
        road_id: Optional[uuid.UUID],
        required: AccessLevel
    ) -> List[str]:
        """Groups that satisfy `required`, lowest level first."""
        if self._names is None:
            return []
        groups = []
        for level in AccessLevel:
            if level < required:
                continue
            group = self._group_for(level, tenant_id, road_id)
            if group is not None:
                groups.append(group)
        return groups

    async def is_authorized(
        self,
        email: Optional[str],
        tenant_id: uuid.UUID,
        road_id: Optional[uuid.UUID],
        required: AccessLevel
    ) -> bool:
        """
        True when the user holds `required` or higher for this tenant/road.

        The demo tenant is checked before the email, so anonymous callers
        reach it too.
        """
        if tenant_id == self._demo_tenant_id:
            return True
        if not email:
            return False

        for group in self.candidate_groups(tenant_id, road_id, required):
            try:
                if await self._membership.is_user_in_group(email, group):
                    return True
            except Exception:
                logger.warning(
                    "Membership check failed for %s in %s; treating as not a member",
                    sanitize_for_log(email), group, exc_info=True
                )
        return False

    async def highest_access_level(
        self,
        email: Optional[str],
        tenant_id: uuid.UUID,
        road_id: Optional[uuid.UUID] = None
    ) -> Optional[AccessLevel]:
        """Highest level held, or None."""
        for level in sorted(AccessLevel, reverse=True):
            if await self.is_authorized(email, tenant_id, road_id, level):
                return level
        return None
