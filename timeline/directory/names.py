"""
Security Group Names

Deterministic mapping between access scopes and directory group names.

    <prefix>Admin                                  global administrators
    <prefix>Tenant-Manager-<tenant>                tenant managers
    <prefix>Tenant-User-<tenant>                   tenant users
    <prefix>Tenant-User-<tenant>-<road>            road users
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import re
import uuid

from ..contracts.base import ConfigurationError, ErrorCode


DEFAULT_PREFIX = "Roads-"

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
_PREFIX_CHARS = re.compile(r"^[A-Za-z0-9._-]+$")


@dataclass(frozen=True)
class ParsedGroupName:
    """What a reserved group name grants. road_id is set only for road groups."""
    kind: str
    tenant_id: Optional[uuid.UUID] = None
    road_id: Optional[uuid.UUID] = None


class GroupNames:
    """Builds and parses reserved group names for one prefix."""

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        if not prefix or not _PREFIX_CHARS.match(prefix):
            raise ConfigurationError(
                f"Invalid group prefix {prefix!r}",
                ErrorCode.INVALID_GROUP_NAME,
                prefix=prefix or ""
            )
        self._prefix = prefix
        escaped = re.escape(prefix)
        self._tenant_manager = re.compile(rf"^{escaped}Tenant-Manager-({_UUID})$", re.IGNORECASE)
        self._road_user = re.compile(rf"^{escaped}Tenant-User-({_UUID})-({_UUID})$", re.IGNORECASE)
        self._tenant_user = re.compile(rf"^{escaped}Tenant-User-({_UUID})$", re.IGNORECASE)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def global_admins(self) -> str:
        return f"{self._prefix}Admin"

    def tenant_manager(self, tenant_id: uuid.UUID) -> str:
        return f"{self._prefix}Tenant-Manager-{tenant_id}"

    def tenant_user(self, tenant_id: uuid.UUID) -> str:
        return f"{self._prefix}Tenant-User-{tenant_id}"

    def road_user(self, tenant_id: uuid.UUID, road_id: uuid.UUID) -> str:
        return f"{self._prefix}Tenant-User-{tenant_id}-{road_id}"

    def is_reserved(self, name: str) -> bool:
        return name.casefold().startswith(self._prefix.casefold())

    def parse(self, name: str) -> ParsedGroupName:
        """
        Classify a reserved group name.

        Raises ConfigurationError for names outside the reserved grammar.
        """
        if name.casefold() == self.global_admins.casefold():
            return ParsedGroupName(kind="global")
        match = self._tenant_manager.match(name)
        if match:
            return ParsedGroupName(kind="tenant_manager", tenant_id=uuid.UUID(match.group(1)))
        match = self._road_user.match(name)
        if match:
            return ParsedGroupName(
                kind="road_user",
                tenant_id=uuid.UUID(match.group(1)),
                road_id=uuid.UUID(match.group(2))
            )
        match = self._tenant_user.match(name)
        if match:
            return ParsedGroupName(kind="tenant_user", tenant_id=uuid.UUID(match.group(1)))
        raise ConfigurationError(
            f"Unparseable group name {name!r}",
            ErrorCode.INVALID_GROUP_NAME,
            group=name
        )
