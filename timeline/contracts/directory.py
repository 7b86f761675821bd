"""
Directory Contracts

Entities mirrored from the external identity directory.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
import uuid


USER_PRINCIPAL = "user"


@dataclass(frozen=True, eq=False)
class AppUser:
    """
    A directory user.

    Two records are the same user only when Id, DisplayName and Email all
    match case-insensitively.
    """
    id: str
    display_name: str
    email: str

    def _identity(self) -> str:
        return f"{self.id}.{self.display_name}.{self.email}".casefold()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AppUser):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    @staticmethod
    def from_email(email: str, display_name: Optional[str] = None) -> AppUser:
        return AppUser(id=email, display_name=display_name or email, email=email)


@dataclass(frozen=True)
class SecurityGroup:
    """A directory security group. MemberCount is informational only."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    description: Optional[str] = None
    member_count: int = 0


@dataclass(frozen=True)
class DirectoryMember:
    """A raw group member as returned by the directory (any principal type)."""
    id: str
    principal_type: str
    display_name: str = ""
    email: str = ""

    def to_app_user(self) -> Optional[AppUser]:
        """User principals with a resolvable email become AppUsers."""
        if self.principal_type != USER_PRINCIPAL or not self.email:
            return None
        return AppUser(
            id=self.id or self.email,
            display_name=self.display_name or self.email,
            email=self.email
        )


@dataclass(frozen=True)
class GroupSnapshot:
    """One group with its membership expanded inline."""
    group: SecurityGroup
    members: Tuple[DirectoryMember, ...] = field(default_factory=tuple)
