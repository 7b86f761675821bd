"""
Timeline Domain Contracts

Tenants own roads, roads embed an ordered sequence of addresses, and a
Polling address may carry a serialized Poll as its content.

BOUNDARY ENFORCEMENT:
=====================
- A Road references its Tenant by TenantId only, never by object
- Addresses have no identity of their own: equality is content based
- No I/O here; persistence lives in the storage layer
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Set
from enum import Enum
import uuid


# =============================================================================
# ENUMS (ordinal values match the persisted JSON shape)
# =============================================================================

class AddressType(Enum):
    """Kind of timeline entry."""
    NOTIFICATION = 0
    SOCIAL_MEDIA = 1
    VIDEO_MEDIA = 2
    POLLING = 3


class RoadScope(Enum):
    """Granularity a road is broken into when displayed."""
    DAY = 0
    WEEK = 1
    MONTH = 2
    YEAR = 3


class PollType(Enum):
    YES_NO = 0
    MULTIPLE_CHOICE = 1


YES_NO_OPTIONS = ("Yes", "No")


# =============================================================================
# POLL
# =============================================================================

@dataclass
class Poll:
    """Structured payload of a Polling address."""
    poll_id: uuid.UUID = field(default_factory=uuid.uuid4)
    question: str = ""
    options: List[str] = field(default_factory=list)
    poll_type: PollType = PollType.MULTIPLE_CHOICE
    responses: List[str] = field(default_factory=list)


# =============================================================================
# ADDRESS
# =============================================================================

@dataclass(eq=False)
class Address:
    """
    A single timeline entry.

    Two addresses are equal when their display strings match
    case-insensitively; tags and release flag do not take part.
    """
    location: Optional[datetime] = field(default_factory=datetime.now)
    title: str = ""
    description: str = ""
    content: str = ""
    address_type: AddressType = AddressType.NOTIFICATION
    tags: Set[str] = field(default_factory=set)
    delay_release: bool = False

    def __str__(self) -> str:
        location = self.location.isoformat() if self.location else ""
        return (
            f"{self.title} - {self.description} - {self.address_type.name} - "
            f"{location} - {self.content}"
        )

    def _equality_key(self) -> str:
        return str(self).casefold()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return self._equality_key() == other._equality_key()

    def __hash__(self) -> int:
        return hash(self._equality_key())


# =============================================================================
# ROAD
# =============================================================================

def _default_end_time() -> datetime:
    return datetime.now() + timedelta(days=30)


@dataclass
class Road:
    """A timeline of dated addresses leading to an event."""
    road_id: uuid.UUID = field(default_factory=uuid.uuid4)
    tenant_id: uuid.UUID = uuid.UUID(int=0)
    title: str = ""
    description: str = ""
    banner: str = ""
    start_time: Optional[datetime] = field(default_factory=datetime.now)
    end_time: Optional[datetime] = field(default_factory=_default_end_time)
    road_admin_group: str = ""
    page_host_css_path: str = ""
    scope: RoadScope = RoadScope.YEAR
    scope_length: int = 1
    addresses: List[Address] = field(default_factory=list)
    _duration: Optional[int] = field(default=None, init=False, repr=False, compare=False)

    @property
    def duration(self) -> int:
        """
        Whole days between start and end (whole hours for DAY scope).

        Computed once on first access; 1 when either end is missing.
        """
        if self._duration is None:
            if self.start_time is None or self.end_time is None:
                self._duration = 1
            else:
                span = (self.end_time - self.start_time).total_seconds()
                if self.scope is RoadScope.DAY:
                    self._duration = int(span / 3600)
                else:
                    self._duration = int(span / 86400)
        return self._duration

    def __str__(self) -> str:
        start = self.start_time.strftime("%d-%b-%y") if self.start_time else ""
        end = self.end_time.strftime("%d-%b-%y") if self.end_time else ""
        return f"{self.title} - {start} --> {end}"


# =============================================================================
# TENANT
# =============================================================================

@dataclass
class Tenant:
    """An organizational unit owning roads. Roads are not embedded."""
    tenant_id: uuid.UUID = field(default_factory=uuid.uuid4)
    tenant_name: str = ""
    description: str = ""
    admin_group: str = ""
