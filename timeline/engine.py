"""
Engine Orchestration Module

Composes the layers into one application object and owns their lifecycle.

LAYER FLOW:
===========
1. Storage: TenantStore over the data root
2. Directory: Graph gateway when a token is configured, else in-memory
3. Cache: GroupMembershipCache refreshed from the gateway
4. Authorization: AuthorizationResolver over the cache
5. Manager: TenantManager with group provisioning on create

START ORDER: seed data root, verify groups, refresh cache, start loop.
STOP ORDER: stop loop, drain provisioning, close the HTTP client.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional
import logging
import os

import httpx

from .authorization import AuthorizationResolver, DEMO_TENANT_ID
from .contracts.base import AuditLogEntry, ConfigurationError
from .directory import DirectoryGateway, InMemoryDirectoryGateway
from .directory.cache import DEFAULT_REFRESH_SECONDS, GroupMembershipCache
from .directory.graph import GRAPH_BASE_URL, GraphDirectoryGateway
from .directory.names import DEFAULT_PREFIX, GroupNames
from .manager import TenantManager
from .observability import AuditCollector
from .provisioning import GroupProvisioner, ProvisioningConfig, StartupVerifier
from .storage import StoreConfig, TenantStore


logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    value = environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_list(environ: Mapping[str, str], key: str) -> List[str]:
    return [item.strip() for item in environ.get(key, "").split(",") if item.strip()]


@dataclass
class DirectoryConfig:
    """Configuration for the identity directory."""
    group_prefix: str = DEFAULT_PREFIX
    graph_base_url: str = GRAPH_BASE_URL
    graph_token: Optional[str] = None
    invite_redirect_url: str = "https://localhost/"
    timeout_seconds: float = 30.0


@dataclass
class CacheConfig:
    """Configuration for the group membership cache."""
    refresh_seconds: float = DEFAULT_REFRESH_SECONDS


@dataclass
class TimelineConfig:
    """Unified configuration for the whole application."""
    store: StoreConfig = None
    directory: DirectoryConfig = None
    cache: CacheConfig = None
    provisioning: ProvisioningConfig = None

    def __post_init__(self):
        self.store = self.store or StoreConfig()
        self.directory = self.directory or DirectoryConfig()
        self.cache = self.cache or CacheConfig()
        self.provisioning = self.provisioning or ProvisioningConfig()

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> TimelineConfig:
        """Build configuration from TIMELINE_* environment variables."""
        env = os.environ if environ is None else environ

        data_root = env.get("TIMELINE_DATA_ROOT") or StoreConfig.data_root
        data_root = os.path.abspath(data_root)

        minutes_raw = env.get("TIMELINE_CACHE_REFRESH_MINUTES", "15")
        try:
            minutes = float(minutes_raw)
        except ValueError as e:
            raise ConfigurationError(
                f"TIMELINE_CACHE_REFRESH_MINUTES is not a number: {minutes_raw!r}",
                value=minutes_raw
            ) from e
        if minutes <= 0:
            raise ConfigurationError(
                "TIMELINE_CACHE_REFRESH_MINUTES must be positive",
                value=minutes_raw
            )

        return TimelineConfig(
            store=StoreConfig(data_root=data_root),
            directory=DirectoryConfig(
                group_prefix=env.get("TIMELINE_GROUP_PREFIX", DEFAULT_PREFIX),
                graph_base_url=env.get("TIMELINE_GRAPH_BASE_URL", GRAPH_BASE_URL),
                graph_token=env.get("TIMELINE_GRAPH_TOKEN") or None,
                invite_redirect_url=env.get("TIMELINE_INVITE_REDIRECT_URL", "https://localhost/"),
            ),
            cache=CacheConfig(refresh_seconds=minutes * 60),
            provisioning=ProvisioningConfig(
                provision_on_create=_env_bool(env, "TIMELINE_PROVISION_GROUPS", True),
                verify_on_startup=_env_bool(env, "TIMELINE_VERIFY_GROUPS_ON_STARTUP", True),
                ensure_road_groups_on_startup=_env_bool(env, "TIMELINE_ENSURE_ROAD_GROUPS_ON_STARTUP", False),
                required_groups=_env_list(env, "TIMELINE_REQUIRED_GROUPS"),
            ),
        )


def _build_names(prefix: str) -> Optional[GroupNames]:
    try:
        return GroupNames(prefix)
    except ConfigurationError as e:
        logger.error("Group naming disabled, only the demo tenant is reachable: %s", e)
        return None


class TimelineApplication:
    """
    The composed application.

    A gateway may be injected (tests, alternate directories); otherwise
    one is built from DirectoryConfig.
    """

    def __init__(
        self,
        config: Optional[TimelineConfig] = None,
        gateway: Optional[DirectoryGateway] = None
    ):
        self._config = config or TimelineConfig()
        self._names = _build_names(self._config.directory.group_prefix)
        self._http_client: Optional[httpx.AsyncClient] = None
        self._gateway = gateway or self._build_gateway()

        self._store = TenantStore(self._config.store.data_root)
        self._cache = GroupMembershipCache(self._gateway, self._config.cache.refresh_seconds)
        self._resolver = AuthorizationResolver(self._cache, self._names, DEMO_TENANT_ID)
        self._provisioner = GroupProvisioner(
            self._gateway,
            self._names,
            enabled=self._config.provisioning.provision_on_create
        )
        self._manager = TenantManager(self._store, self._provisioner, self._names)
        self._verifier = StartupVerifier(self._gateway, self._names, self._config.provisioning)
        self._audit = AuditCollector()
        self._started = False

    def _build_gateway(self) -> DirectoryGateway:
        directory = self._config.directory
        if not directory.graph_token:
            logger.info("No directory token configured; using the in-memory directory")
            return InMemoryDirectoryGateway(self._names)
        self._http_client = httpx.AsyncClient(
            base_url=directory.graph_base_url,
            headers={"Authorization": f"Bearer {directory.graph_token}"},
            timeout=directory.timeout_seconds
        )
        return GraphDirectoryGateway(
            self._http_client,
            self._names or GroupNames(DEFAULT_PREFIX),
            directory.invite_redirect_url
        )

    # =========================================================================
    # COMPONENTS
    # =========================================================================

    @property
    def config(self) -> TimelineConfig:
        return self._config

    @property
    def names(self) -> Optional[GroupNames]:
        return self._names

    @property
    def gateway(self) -> DirectoryGateway:
        return self._gateway

    @property
    def cache(self) -> GroupMembershipCache:
        return self._cache

    @property
    def resolver(self) -> AuthorizationResolver:
        return self._resolver

    @property
    def manager(self) -> TenantManager:
        return self._manager

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        if self._started:
            return
        await self._manager.initialize()

        tenants = await self._manager.list_tenants()
        roads_by_tenant: Dict = {}
        if self._config.provisioning.ensure_road_groups_on_startup:
            for tenant in tenants:
                roads_by_tenant[tenant.tenant_id] = await self._manager.list_roads(tenant.tenant_id)
        try:
            await self._verifier.verify(tenants, roads_by_tenant)
        except Exception:
            logger.error("Security group verification failed at startup", exc_info=True)

        await self._cache.start()
        self._started = True
        logger.info("Timeline application started with data root %s", self._store.root)

    async def stop(self):
        await self._cache.stop()
        await self._manager.wait_for_provisioning()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        self._started = False
        logger.info("Timeline application stopped")

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Audit entries collected from the storage layer."""
        self._audit.collect(self._store.get_audit_log())
        return self._audit.get_entries()
