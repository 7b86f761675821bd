"""
Identity Directory Layer

RESPONSIBILITY: Group and membership management in the external directory
OUTPUTS: SecurityGroup, AppUser, GroupSnapshot

Email is the user key at this boundary; implementations resolve the
directory's own object ids internally.

IMPLEMENTATIONS:
================
- InMemoryDirectoryGateway: process-local stand-in for tests and
  disconnected operation (below)
- GraphDirectoryGateway: live gateway over the Graph REST API (graph.py)

All methods are coroutines. Cancelling the awaiting task aborts the
outstanding call.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from ..contracts.directory import (
    USER_PRINCIPAL, AppUser, DirectoryMember, GroupSnapshot, SecurityGroup,
)
from .names import DEFAULT_PREFIX, GroupNames


# =============================================================================
# GATEWAY INTERFACE (Dependency Inversion)
# =============================================================================

class DirectoryGateway:
    """
    Abstract directory gateway interface.

    Failures of the underlying service surface as TransientDirectoryError.
    """

    async def list_groups(self) -> List[SecurityGroup]:
        """All groups carrying the reserved prefix."""
        raise NotImplementedError

    async def list_group_snapshots(self) -> List[GroupSnapshot]:
        """All reserved-prefix groups with membership expanded inline."""
        raise NotImplementedError

    async def get_group_by_name(self, group_name: str) -> Optional[SecurityGroup]:
        raise NotImplementedError

    async def ensure_group(self, group_name: str, description: Optional[str] = None) -> SecurityGroup:
        """Return the group with this exact name, creating it if needed."""
        raise NotImplementedError

    async def delete_group_by_name(self, group_name: str) -> None:
        raise NotImplementedError

    async def search_users(self, query: str) -> List[AppUser]:
        """Users whose email or principal name starts with / contains query."""
        raise NotImplementedError

    async def invite_user(
        self,
        email: str,
        display_name: Optional[str] = None,
        groups: Optional[Iterable[str]] = None
    ) -> AppUser:
        """Resolve the user, inviting them if unknown, then add to groups."""
        raise NotImplementedError

    async def add_user_to_group(self, user_email: str, group_name: str) -> None:
        raise NotImplementedError

    async def remove_user_from_group(self, user_email: str, group_name: str) -> None:
        raise NotImplementedError

    async def get_group_members(self, group_name: str) -> List[AppUser]:
        raise NotImplementedError

    async def is_user_in_group(self, user_email: str, group_name: str) -> bool:
        """Direct, uncached membership check."""
        raise NotImplementedError


# =============================================================================
# IN-MEMORY GATEWAY (Reference Implementation)
# =============================================================================

def _key(value: str) -> str:
    return value.casefold()


class InMemoryDirectoryGateway(DirectoryGateway):
    """
    In-memory implementation of the directory gateway.

    Group names and emails are case-insensitive keys. The global admins
    group exists from construction.
    """

    def __init__(self, names: Optional[GroupNames] = None):
        self._names = names or GroupNames(DEFAULT_PREFIX)
        self._groups: Dict[str, SecurityGroup] = {}
        self._users: Dict[str, AppUser] = {}
        self._members: Dict[str, Dict[str, str]] = {}  # group key -> {email key: email}

        self._add_group(
            self._names.global_admins,
            "Global administrators with access to all sub-tenants and roads."
        )

    def _add_group(self, name: str, description: Optional[str]) -> SecurityGroup:
        key = _key(name)
        if key not in self._groups:
            self._groups[key] = SecurityGroup(name=name, description=description or "")
            self._members[key] = {}
        return self._groups[key]

    def _with_count(self, group: SecurityGroup) -> SecurityGroup:
        return SecurityGroup(
            id=group.id,
            name=group.name,
            description=group.description,
            member_count=len(self._members.get(_key(group.name), {}))
        )

    def _user_for(self, email: str) -> AppUser:
        return self._users.get(_key(email)) or AppUser.from_email(email)

    async def list_groups(self) -> List[SecurityGroup]:
        return [
            self._with_count(g) for g in self._groups.values()
            if self._names.is_reserved(g.name)
        ]

    async def list_group_snapshots(self) -> List[GroupSnapshot]:
        snapshots = []
        for key, group in self._groups.items():
            if not self._names.is_reserved(group.name):
                continue
            members = tuple(
                DirectoryMember(
                    id=user.id,
                    principal_type=USER_PRINCIPAL,
                    display_name=user.display_name,
                    email=user.email
                )
                for user in (self._user_for(e) for e in self._members[key].values())
            )
            snapshots.append(GroupSnapshot(group=self._with_count(group), members=members))
        return snapshots

    async def get_group_by_name(self, group_name: str) -> Optional[SecurityGroup]:
        group = self._groups.get(_key(group_name))
        return self._with_count(group) if group else None

    async def ensure_group(self, group_name: str, description: Optional[str] = None) -> SecurityGroup:
        return self._with_count(self._add_group(group_name, description))

    async def delete_group_by_name(self, group_name: str) -> None:
        self._groups.pop(_key(group_name), None)
        self._members.pop(_key(group_name), None)

    async def search_users(self, query: str) -> List[AppUser]:
        needle = _key(query)
        return [
            u for u in self._users.values()
            if needle in _key(u.email) or needle in _key(u.display_name)
        ]

    async def invite_user(
        self,
        email: str,
        display_name: Optional[str] = None,
        groups: Optional[Iterable[str]] = None
    ) -> AppUser:
        user = self._users.setdefault(_key(email), AppUser.from_email(email, display_name))
        for group_name in groups or ():
            self._add_group(group_name, None)
            self._members[_key(group_name)][_key(user.email)] = user.email
        return user

    async def add_user_to_group(self, user_email: str, group_name: str) -> None:
        self._add_group(group_name, None)
        self._users.setdefault(_key(user_email), AppUser.from_email(user_email))
        self._members[_key(group_name)][_key(user_email)] = user_email

    async def remove_user_from_group(self, user_email: str, group_name: str) -> None:
        members = self._members.get(_key(group_name))
        if members is not None:
            members.pop(_key(user_email), None)

    async def get_group_members(self, group_name: str) -> List[AppUser]:
        members = self._members.get(_key(group_name), {})
        return [self._user_for(email) for email in members.values()]

    async def is_user_in_group(self, user_email: str, group_name: str) -> bool:
        return _key(user_email) in self._members.get(_key(group_name), {})
