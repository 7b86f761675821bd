"""
Tenant Manager

RESPONSIBILITY: Single entry point for tenant and road reads and writes
ALLOWED INPUTS: Tenant, Road, ids
OUTPUTS: Tenant, Road, listings

Every store call runs in a worker thread so file I/O never blocks the
event loop. Successful creates hand off to the GroupProvisioner.

WHAT THIS LAYER MUST NOT DO:
============================
- Touch the data root except through TenantStore
- Let a provisioning failure fail a tenant or road write
- Make access decisions (callers use the AuthorizationResolver)
"""

from __future__ import annotations
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional
import asyncio
import logging
import uuid

from .authorization import DEMO_ROAD_ID, DEMO_TENANT_ID
from .contracts.models import Address, AddressType, Poll, PollType, Road, RoadScope, Tenant
from .contracts.codec import poll_to_json
from .directory.names import GroupNames
from .provisioning import GroupProvisioner
from .storage import TenantStore


logger = logging.getLogger(__name__)


def build_demo_tenant(names: Optional[GroupNames] = None) -> Tenant:
    return Tenant(
        tenant_id=DEMO_TENANT_ID,
        tenant_name="Demo Theatre",
        description="Sandbox tenant open to every visitor.",
        admin_group=names.tenant_manager(DEMO_TENANT_ID) if names else ""
    )


def build_demo_road(names: Optional[GroupNames] = None) -> Road:
    start = datetime.now().replace(hour=19, minute=30, second=0, microsecond=0)
    poll = Poll(
        question="Will you be joining us on opening night?",
        poll_type=PollType.YES_NO,
        options=["Yes", "No"]
    )
    return Road(
        road_id=DEMO_ROAD_ID,
        tenant_id=DEMO_TENANT_ID,
        title="Opening Night",
        description="Countdown to the first performance.",
        start_time=start,
        end_time=start + timedelta(days=30),
        road_admin_group=names.road_user(DEMO_TENANT_ID, DEMO_ROAD_ID) if names else "",
        scope=RoadScope.MONTH,
        addresses=[
            Address(
                location=start,
                title="Auditions announced",
                description="Open call for the full cast.",
                address_type=AddressType.NOTIFICATION,
                tags={"cast"}
            ),
            Address(
                location=start + timedelta(days=14),
                title="Rehearsal photos",
                description="First look behind the scenes.",
                address_type=AddressType.SOCIAL_MEDIA,
                tags={"rehearsal"}
            ),
            Address(
                location=start + timedelta(days=28),
                title="Attendance poll",
                description="Let the company know you are coming.",
                content=poll_to_json(poll),
                address_type=AddressType.POLLING
            ),
        ]
    )


class TenantManager:
    """
    Async facade over TenantStore plus group provisioning.

    GUARANTEES:
    ===========
    1. Writes are durable before the coroutine returns
    2. Provisioning requests are scheduled only after a successful write
    3. wait_for_provisioning() drains every outstanding request
    """

    def __init__(
        self,
        store: TenantStore,
        provisioner: Optional[GroupProvisioner] = None,
        names: Optional[GroupNames] = None
    ):
        self._store = store
        self._provisioner = provisioner
        self._names = names

    @property
    def store(self) -> TenantStore:
        return self._store

    def tenant_path(self, tenant_id: uuid.UUID) -> Path:
        """On-disk directory of a tenant."""
        return self._store.tenant_path(tenant_id)

    # =========================================================================
    # STARTUP
    # =========================================================================

    async def initialize(self) -> bool:
        """
        Ensure the data root exists, seeding the demo tenant on first run.

        Returns True when the demo data was seeded.
        """
        return await asyncio.to_thread(self._initialize_sync)

    def _initialize_sync(self) -> bool:
        root = self._store.root
        first_run = not root.exists() or not any(root.iterdir())
        root.mkdir(parents=True, exist_ok=True)
        if not first_run:
            return False
        logger.info("Seeding demo tenant under %s", root)
        self._store.create_tenant(build_demo_tenant(self._names))
        self._store.save_road(build_demo_road(self._names))
        return True

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create_tenant(self, tenant: Tenant) -> Tenant:
        await asyncio.to_thread(self._store.create_tenant, tenant)
        if self._provisioner is not None:
            self._provisioner.provision_tenant(tenant)
        return tenant

    async def remove_tenant(self, tenant_id: uuid.UUID) -> None:
        await asyncio.to_thread(self._store.remove_tenant, tenant_id)

    async def save_road(self, road: Road) -> bool:
        """False when the owning tenant does not exist (nothing written)."""
        saved = await asyncio.to_thread(self._store.save_road, road)
        if saved and self._provisioner is not None:
            self._provisioner.provision_road(road)
        return saved

    async def remove_road(self, road_id: uuid.UUID) -> bool:
        return await asyncio.to_thread(self._store.remove_road, road_id)

    async def wait_for_provisioning(self):
        if self._provisioner is not None:
            await self._provisioner.wait()

    # =========================================================================
    # READS
    # =========================================================================

    async def list_tenants(self) -> List[Tenant]:
        return await asyncio.to_thread(self._store.list_tenants)

    async def list_roads(self, tenant_id: uuid.UUID) -> List[Road]:
        return await asyncio.to_thread(self._store.list_roads, tenant_id)

    async def get_tenant(self, resource_id: uuid.UUID) -> Tenant:
        """Tenant by its own id, or by the id of a road it contains."""
        return await asyncio.to_thread(self._store.get_tenant, resource_id)

    async def find_tenant(self, tenant_id: uuid.UUID) -> Optional[Tenant]:
        return await asyncio.to_thread(self._store.find_tenant, tenant_id)

    async def find_tenant_by_road(self, road_id: uuid.UUID) -> Optional[Tenant]:
        return await asyncio.to_thread(self._store.find_tenant_by_road, road_id)

    async def get_road(self, road_id: uuid.UUID) -> Road:
        return await asyncio.to_thread(self._store.get_road, road_id)
