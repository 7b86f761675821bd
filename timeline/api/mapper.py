"""
API Mapper
==========

Transforms domain contracts into response DTOs and request bodies back
into contracts. Enum values travel as their names in the API.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..contracts.codec import parse_enum
from ..contracts.models import Address, AddressType, Road, RoadScope, Tenant
from ..core.polls import validate_poll_content


# =============================================================================
# REQUEST BODIES
# =============================================================================

class TenantBody(BaseModel):
    tenant_id: Optional[uuid.UUID] = None
    tenant_name: str
    description: str = ""
    admin_group: str = ""


class AddressBody(BaseModel):
    location: Optional[datetime] = None
    title: str = ""
    description: str = ""
    content: str = ""
    address_type: str = "Notification"
    tags: List[str] = Field(default_factory=list)
    delay_release: bool = False


class RoadBody(BaseModel):
    tenant_id: uuid.UUID
    title: str = ""
    description: str = ""
    banner: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    road_admin_group: str = ""
    page_host_css_path: str = ""
    scope: str = "Year"
    scope_length: int = 1
    addresses: List[AddressBody] = Field(default_factory=list)


def body_to_tenant(body: TenantBody) -> Tenant:
    return Tenant(
        tenant_id=body.tenant_id or uuid.uuid4(),
        tenant_name=body.tenant_name,
        description=body.description,
        admin_group=body.admin_group
    )


def body_to_address(body: AddressBody) -> Address:
    """
    Raises ValueError for an unknown address type and ValidationError for
    Polling content that is not a valid poll.
    """
    address = Address(
        location=body.location,
        title=body.title,
        description=body.description,
        content=body.content,
        address_type=parse_enum(AddressType, body.address_type),
        tags=set(body.tags),
        delay_release=body.delay_release
    )
    validate_poll_content(address)
    return address


def body_to_road(road_id: uuid.UUID, body: RoadBody) -> Road:
    """Raises ValueError for an unknown scope or address type; see body_to_address."""
    return Road(
        road_id=road_id,
        tenant_id=body.tenant_id,
        title=body.title,
        description=body.description,
        banner=body.banner,
        start_time=body.start_time,
        end_time=body.end_time,
        road_admin_group=body.road_admin_group,
        page_host_css_path=body.page_host_css_path,
        scope=parse_enum(RoadScope, body.scope),
        scope_length=body.scope_length,
        addresses=[body_to_address(a) for a in body.addresses]
    )


# =============================================================================
# RESPONSE DTOs
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def map_tenant_to_dto(tenant: Tenant) -> Dict[str, Any]:
    return {
        "tenant_id": str(tenant.tenant_id),
        "tenant_name": tenant.tenant_name,
        "description": tenant.description,
        "admin_group": tenant.admin_group,
    }


def map_address_to_dto(address: Address) -> Dict[str, Any]:
    return {
        "location": _iso(address.location),
        "title": address.title,
        "description": address.description,
        "content": address.content,
        "address_type": address.address_type.name,
        "tags": sorted(address.tags),
        "delay_release": address.delay_release,
    }


def map_road_to_dto(road: Road, include_addresses: bool = True) -> Dict[str, Any]:
    """Map a Road, with its derived duration, to a response DTO."""
    dto = {
        "road_id": str(road.road_id),
        "tenant_id": str(road.tenant_id),
        "title": road.title,
        "description": road.description,
        "banner": road.banner,
        "start_time": _iso(road.start_time),
        "end_time": _iso(road.end_time),
        "road_admin_group": road.road_admin_group,
        "page_host_css_path": road.page_host_css_path,
        "scope": road.scope.name,
        "scope_length": road.scope_length,
        "duration": road.duration,
    }
    if include_addresses:
        dto["addresses"] = [map_address_to_dto(a) for a in road.addresses]
    return dto
