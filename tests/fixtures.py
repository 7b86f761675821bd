"""
Timeline Test Fixtures

Explicit tenants, roads and addresses for deterministic testing.
"""

from datetime import datetime
import uuid

from timeline.contracts.models import (
    Address, AddressType, Poll, PollType, Road, RoadScope, Tenant,
)
from timeline.directory.names import GroupNames


# =============================================================================
# FIXED TIMESTAMPS AND IDS
# =============================================================================

T_2025_START = datetime(2025, 1, 1, 0, 0, 0)
T_2025_END = datetime(2025, 12, 31, 0, 0, 0)
T_OPENING = datetime(2025, 6, 1, 19, 30, 0)

TENANT_1_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
TENANT_2_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
ROAD_1_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
ROAD_2_ID = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")

NAMES = GroupNames("Roads-")


# =============================================================================
# BUILDERS
# =============================================================================

def make_tenant(tenant_id: uuid.UUID = TENANT_1_ID, name: str = "Globe Theatre") -> Tenant:
    return Tenant(
        tenant_id=tenant_id,
        tenant_name=name,
        description=f"{name} productions",
        admin_group=NAMES.tenant_manager(tenant_id)
    )


def make_poll(poll_type: PollType = PollType.MULTIPLE_CHOICE) -> Poll:
    return Poll(
        poll_id=uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc"),
        question="Which night will you attend?",
        options=["Friday", "Saturday", "Sunday"],
        poll_type=poll_type,
        responses=["Saturday"]
    )


def make_address(
    title: str = "Tickets on sale",
    address_type: AddressType = AddressType.NOTIFICATION,
    content: str = ""
) -> Address:
    return Address(
        location=T_OPENING,
        title=title,
        description="Box office opens at noon",
        content=content,
        address_type=address_type,
        tags={"tickets", "box-office"},
        delay_release=False
    )


def make_road(
    road_id: uuid.UUID = ROAD_1_ID,
    tenant_id: uuid.UUID = TENANT_1_ID,
    title: str = "Launch",
    scope: RoadScope = RoadScope.YEAR
) -> Road:
    return Road(
        road_id=road_id,
        tenant_id=tenant_id,
        title=title,
        description="Road to opening night",
        banner="banner.png",
        start_time=T_2025_START,
        end_time=T_2025_END,
        road_admin_group=NAMES.road_user(tenant_id, road_id),
        page_host_css_path="css/launch.css",
        scope=scope,
        scope_length=1,
        addresses=[
            make_address(),
            make_address("Cast reveal", AddressType.SOCIAL_MEDIA),
        ]
    )
