"""
Group Provisioning

Keeps the directory's reserved groups in step with tenants and roads.

- GroupProvisioner: fire-and-forget ensure requests on tenant/road creation
- StartupVerifier: one pass at startup over every group the data implies

Neither ever raises to its caller; failures are logged per group.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set
import asyncio
import logging

from .contracts.base import ConfigurationError, sanitize_for_log
from .contracts.models import Road, Tenant
from .directory import DirectoryGateway
from .directory.names import GroupNames


logger = logging.getLogger(__name__)


@dataclass
class ProvisioningConfig:
    """Configuration for group provisioning and startup verification."""
    provision_on_create: bool = True
    verify_on_startup: bool = True
    ensure_road_groups_on_startup: bool = False
    required_groups: List[str] = field(default_factory=list)


async def _ensure(gateway: DirectoryGateway, group_name: str) -> bool:
    try:
        await gateway.ensure_group(group_name)
    except Exception:
        logger.warning("Failed ensuring group %s", group_name, exc_info=True)
        return False
    logger.info("Ensured security group: %s", group_name)
    return True


# =============================================================================
# PROVISIONING ON CREATE
# =============================================================================

class GroupProvisioner:
    """
    Schedules group ensures as background tasks on the running loop.

    Outstanding tasks are tracked until they finish; wait() drains them.
    """

    def __init__(self, gateway: DirectoryGateway, names: Optional[GroupNames], enabled: bool = True):
        self._gateway = gateway
        self._names = names
        self._enabled = enabled and names is not None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _schedule(self, group_names: Iterable[str]):
        for group_name in group_names:
            task = asyncio.get_running_loop().create_task(_ensure(self._gateway, group_name))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def provision_tenant(self, tenant: Tenant):
        if not self._enabled:
            return
        self._schedule([
            self._names.tenant_manager(tenant.tenant_id),
            self._names.tenant_user(tenant.tenant_id),
        ])

    def provision_road(self, road: Road):
        if not self._enabled:
            return
        self._schedule([self._names.road_user(road.tenant_id, road.road_id)])

    async def wait(self):
        """Await every outstanding provisioning request."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


# =============================================================================
# STARTUP VERIFICATION
# =============================================================================

class StartupVerifier:
    """Ensures the global, required, tenant and (optionally) road groups exist."""

    def __init__(self, gateway: DirectoryGateway, names: Optional[GroupNames], config: ProvisioningConfig):
        self._gateway = gateway
        self._names = names
        self._config = config

    def groups_to_ensure(self, tenants: Iterable[Tenant], roads_by_tenant: dict) -> List[str]:
        """
        Ordered, case-insensitively unique group names.

        Required groups outside the reserved grammar are logged and skipped.
        """
        names = self._names
        ordered: List[str] = []
        seen: Set[str] = set()

        def add(group_name: str):
            if group_name and group_name.strip() and group_name.casefold() not in seen:
                seen.add(group_name.casefold())
                ordered.append(group_name)

        add(names.global_admins)
        for required in self._config.required_groups:
            try:
                names.parse(required)
            except ConfigurationError as e:
                logger.warning("Skipping required group %s: %s", sanitize_for_log(required), e)
                continue
            add(required)

        if self._config.verify_on_startup:
            for tenant in tenants:
                add(names.tenant_manager(tenant.tenant_id))
                add(names.tenant_user(tenant.tenant_id))
                if self._config.ensure_road_groups_on_startup:
                    for road in roads_by_tenant.get(tenant.tenant_id, ()):
                        add(names.road_user(tenant.tenant_id, road.road_id))
        return ordered

    async def verify(self, tenants: Iterable[Tenant], roads_by_tenant: dict) -> List[str]:
        """Ensure every implied group. Returns the names that were ensured."""
        if self._names is None:
            logger.warning("Group verification skipped: no valid group naming")
            return []
        ensured = []
        for group_name in self.groups_to_ensure(tenants, roads_by_tenant):
            if await _ensure(self._gateway, group_name):
                ensured.append(group_name)
        return ensured
