"""
Manifest Codec

Pure translation between domain contracts and the persisted JSON shape.

PERSISTED SHAPE:
================
Tenant:  TenantName, Description, TenantId, AdminSecurityGroup
Road:    StartTime, EndTime, Banner, RoadId, RoadAdmin, PageHostCssPath,
         Description, Title, RoadScope, RoadScopeLength, TenantId, Addresses[]
Address: Location, Title, Description, Content, AddressType, Tags, DelayRelease
Poll:    PollId, Question, Options, PollType, Responses

Enums are written as their ordinal; names are accepted on read.
Any malformed input surfaces as CorruptRecordError.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar
from enum import Enum
import json
import re
import uuid

from .base import CorruptRecordError
from .models import Address, AddressType, Poll, PollType, Road, RoadScope, Tenant


E = TypeVar("E", bound=Enum)

# Fractions longer than microseconds (e.g. .NET's 7 digits) are truncated
_FRACTION = re.compile(r"(\.\d{6})\d+")


# =============================================================================
# PRIMITIVES
# =============================================================================

def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    text = _FRACTION.sub(r"\1", value.strip()).replace("Z", "+00:00")
    return datetime.fromisoformat(text)


def parse_enum(enum_type: Type[E], value: Any) -> E:
    if isinstance(value, bool):
        raise ValueError(f"invalid {enum_type.__name__}: {value!r}")
    if isinstance(value, int):
        return enum_type(value)
    if isinstance(value, str):
        if value.strip().lstrip("-").isdigit():
            return enum_type(int(value))
        wanted = value.replace("_", "").casefold()
        for member in enum_type:
            if member.name.replace("_", "").casefold() == wanted:
                return member
    raise ValueError(f"invalid {enum_type.__name__}: {value!r}")


def _parse_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _require_object(data: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise CorruptRecordError(f"{kind} manifest must be a JSON object")
    return data


# =============================================================================
# POLL
# =============================================================================

def poll_to_dict(poll: Poll) -> Dict[str, Any]:
    return {
        "PollId": str(poll.poll_id),
        "Question": poll.question,
        "Options": list(poll.options),
        "PollType": poll.poll_type.value,
        "Responses": list(poll.responses),
    }


def poll_from_dict(data: Any) -> Poll:
    data = _require_object(data, "Poll")
    try:
        return Poll(
            poll_id=_parse_uuid(data["PollId"]) if data.get("PollId") else uuid.uuid4(),
            question=_text(data, "Question"),
            options=[str(o) for o in (data.get("Options") or [])],
            poll_type=parse_enum(PollType, data.get("PollType", PollType.MULTIPLE_CHOICE.value)),
            responses=[str(r) for r in (data.get("Responses") or [])],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptRecordError(f"Invalid poll: {e}") from e


def poll_to_json(poll: Poll) -> str:
    return json.dumps(poll_to_dict(poll))


def poll_from_json(text: str) -> Poll:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptRecordError(f"Poll content is not JSON: {e}") from e
    return poll_from_dict(data)


# =============================================================================
# ADDRESS
# =============================================================================

def address_to_dict(address: Address) -> Dict[str, Any]:
    return {
        "Location": _format_time(address.location),
        "Title": address.title,
        "Description": address.description,
        "Content": address.content,
        "AddressType": address.address_type.value,
        "Tags": sorted(address.tags),
        "DelayRelease": address.delay_release,
    }


def address_from_dict(data: Any) -> Address:
    data = _require_object(data, "Address")
    try:
        return Address(
            location=parse_time(data.get("Location")),
            title=_text(data, "Title"),
            description=_text(data, "Description"),
            content=_text(data, "Content"),
            address_type=parse_enum(AddressType, data.get("AddressType", 0)),
            tags={str(t) for t in (data.get("Tags") or [])},
            delay_release=bool(data.get("DelayRelease", False)),
        )
    except (TypeError, ValueError) as e:
        raise CorruptRecordError(f"Invalid address: {e}") from e


# =============================================================================
# ROAD
# =============================================================================

def road_to_manifest(road: Road) -> Dict[str, Any]:
    return {
        "StartTime": _format_time(road.start_time),
        "EndTime": _format_time(road.end_time),
        "Banner": road.banner,
        "RoadId": str(road.road_id),
        "RoadAdmin": road.road_admin_group,
        "PageHostCssPath": road.page_host_css_path,
        "Description": road.description,
        "Title": road.title,
        "RoadScope": road.scope.value,
        "RoadScopeLength": road.scope_length,
        "TenantId": str(road.tenant_id),
        "Addresses": [address_to_dict(a) for a in road.addresses],
    }


def road_from_manifest(data: Any) -> Road:
    data = _require_object(data, "Road")
    try:
        return Road(
            road_id=_parse_uuid(data["RoadId"]),
            tenant_id=_parse_uuid(data["TenantId"]),
            title=_text(data, "Title"),
            description=_text(data, "Description"),
            banner=_text(data, "Banner"),
            start_time=parse_time(data.get("StartTime")),
            end_time=parse_time(data.get("EndTime")),
            road_admin_group=_text(data, "RoadAdmin"),
            page_host_css_path=_text(data, "PageHostCssPath"),
            scope=parse_enum(RoadScope, data.get("RoadScope", RoadScope.YEAR.value)),
            scope_length=int(data.get("RoadScopeLength", 1)),
            addresses=[address_from_dict(a) for a in (data.get("Addresses") or [])],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptRecordError(f"Invalid road manifest: {e}") from e


# =============================================================================
# TENANT
# =============================================================================

def tenant_to_manifest(tenant: Tenant) -> Dict[str, Any]:
    return {
        "TenantName": tenant.tenant_name,
        "Description": tenant.description,
        "TenantId": str(tenant.tenant_id),
        "AdminSecurityGroup": tenant.admin_group,
    }


def tenant_from_manifest(data: Any) -> Tenant:
    data = _require_object(data, "Tenant")
    try:
        return Tenant(
            tenant_id=_parse_uuid(data["TenantId"]),
            tenant_name=_text(data, "TenantName"),
            description=_text(data, "Description"),
            admin_group=_text(data, "AdminSecurityGroup"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptRecordError(f"Invalid tenant manifest: {e}") from e
