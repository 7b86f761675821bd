"""
Tenant Storage Layer

RESPONSIBILITY: Durable, directory-tree persistence of tenants and roads
ALLOWED INPUTS: Tenant and Road contracts
OUTPUTS: Tenant, Road (deserialized manifests)

LAYOUT:
=======
<data_root>/<TenantId>/TenantConfiguration.json          (Tenant, no roads)
<data_root>/<TenantId>/<RoadId>/RoadConfiguration.json   (Road + addresses)

WHAT THIS LAYER MUST NOT DO:
============================
- Make access decisions
- Talk to the identity directory
- Let one unreadable manifest abort a listing

CONSISTENCY:
============
- Manifests are written to a temp file and swapped in with os.replace,
  so a reader sees either the old or the new record, never half of one
- Every resolve-then-mutate sequence runs under one process-wide lock
- Reads take no lock and may observe a slightly stale tree
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging
import os
import shutil
import threading
import uuid

from ..contracts.base import AuditLogEntry, CorruptRecordError, ErrorCode, NotFoundError
from ..contracts.codec import (
    road_from_manifest, road_to_manifest, tenant_from_manifest, tenant_to_manifest,
)
from ..contracts.models import Road, Tenant


logger = logging.getLogger(__name__)

TENANT_MANIFEST = "TenantConfiguration.json"
ROAD_MANIFEST = "RoadConfiguration.json"

# Shared by every store instance in the process
_MUTATION_LOCK = threading.RLock()


@dataclass
class StoreConfig:
    """Configuration for tenant storage."""
    data_root: str = "./webapps/data"


# =============================================================================
# MANIFEST I/O
# =============================================================================

def _write_manifest(path: Path, data: Dict[str, Any]) -> None:
    """Atomically replace a manifest. Errors propagate to the caller."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def _read_manifest(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise CorruptRecordError(f"Missing manifest {path.name}", path=str(path)) from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptRecordError(f"Unreadable manifest: {e}", path=str(path)) from e


def _subdirectories(path: Path) -> List[Path]:
    """Sorted child directories; empty if the parent vanished mid-scan."""
    try:
        return sorted(entry for entry in path.iterdir() if entry.is_dir())
    except FileNotFoundError:
        return []


# =============================================================================
# TENANT STORE
# =============================================================================

class TenantStore:
    """
    File-tree store for tenants and their roads.

    BOUNDARY ENFORCEMENT:
    - ONLY this class mutates the data root
    - Per-item read failures are logged and skipped
    - Write failures (disk full, permissions) propagate unmodified
    """

    def __init__(self, data_root: Union[str, Path]):
        self._root = Path(data_root)
        self._audit_log: List[AuditLogEntry] = []

    @property
    def root(self) -> Path:
        return self._root

    def tenant_path(self, tenant_id: uuid.UUID) -> Path:
        return self._root / str(tenant_id)

    def road_path(self, tenant_id: uuid.UUID, road_id: uuid.UUID) -> Path:
        return self.tenant_path(tenant_id) / str(road_id)

    # =========================================================================
    # MUTATIONS (serialized)
    # =========================================================================

    def create_tenant(self, tenant: Tenant) -> None:
        """
        Write (or overwrite) a tenant manifest, creating its directory.

        The new manifest replaces any existing one in a single swap, so a
        failed write leaves the previous record in place.
        """
        manifest = self.tenant_path(tenant.tenant_id) / TENANT_MANIFEST
        with _MUTATION_LOCK:
            _write_manifest(manifest, tenant_to_manifest(tenant))
            self._log_audit("tenant_created", str(tenant.tenant_id))

    def remove_tenant(self, tenant_id: uuid.UUID) -> None:
        """Delete a tenant and all its roads. No-op if absent."""
        with _MUTATION_LOCK:
            path = self.tenant_path(tenant_id)
            if not path.exists():
                return
            shutil.rmtree(path)
            self._log_audit("tenant_removed", str(tenant_id))

    def save_road(self, road: Road) -> bool:
        """
        Write a road manifest under its tenant.

        Returns False, without writing, when the owning tenant is unknown.
        """
        with _MUTATION_LOCK:
            tenant = self.find_tenant(road.tenant_id)
            if tenant is None:
                logger.debug("Road %s not saved: tenant %s not found", road.road_id, road.tenant_id)
                return False
            manifest = self.road_path(tenant.tenant_id, road.road_id) / ROAD_MANIFEST
            _write_manifest(manifest, road_to_manifest(road))
            self._log_audit(
                "road_saved",
                str(road.road_id),
                (("tenant_id", str(tenant.tenant_id)),)
            )
            return True

    def remove_road(self, road_id: uuid.UUID) -> bool:
        """Delete a road wherever it lives. Returns False if not found."""
        with _MUTATION_LOCK:
            tenant = self.find_tenant_by_road(road_id)
            if tenant is None:
                return False
            shutil.rmtree(self.road_path(tenant.tenant_id, road_id))
            self._log_audit(
                "road_removed",
                str(road_id),
                (("tenant_id", str(tenant.tenant_id)),)
            )
            return True

    # =========================================================================
    # READS (lock-free)
    # =========================================================================

    def list_tenants(self) -> List[Tenant]:
        """All readable tenants. Corrupt or missing manifests are skipped."""
        tenants = []
        for entry in _subdirectories(self._root):
            try:
                tenants.append(tenant_from_manifest(_read_manifest(entry / TENANT_MANIFEST)))
            except CorruptRecordError as e:
                logger.warning("Skipping tenant directory %s: %s", entry.name, e)
        return tenants

    def list_roads(self, tenant_id: uuid.UUID) -> List[Road]:
        """All readable roads of a tenant."""
        path = self.tenant_path(tenant_id)
        roads = []
        for entry in _subdirectories(path):
            try:
                roads.append(road_from_manifest(_read_manifest(entry / ROAD_MANIFEST)))
            except CorruptRecordError as e:
                logger.warning("Skipping road directory %s/%s: %s", path.name, entry.name, e)
        return roads

    def find_tenant(self, tenant_id: uuid.UUID) -> Optional[Tenant]:
        """Exact match on TenantId."""
        for tenant in self.list_tenants():
            if tenant.tenant_id == tenant_id:
                return tenant
        return None

    def find_tenant_by_road(self, road_id: uuid.UUID) -> Optional[Tenant]:
        """The tenant holding a road with this id."""
        for tenant in self.list_tenants():
            if (self.road_path(tenant.tenant_id, road_id) / ROAD_MANIFEST).is_file():
                return tenant
        return None

    def get_tenant(self, resource_id: uuid.UUID) -> Tenant:
        """
        Resolve a tenant by its own id, falling back to a contained road id.

        Raises NotFoundError when neither matches.
        """
        tenant = self.find_tenant(resource_id)
        if tenant is None:
            tenant = self.find_tenant_by_road(resource_id)
        if tenant is None:
            raise NotFoundError(
                f"No tenant or road with id {resource_id}",
                ErrorCode.TENANT_NOT_FOUND,
                resource_id=str(resource_id)
            )
        return tenant

    def get_road(self, road_id: uuid.UUID) -> Road:
        """Raises NotFoundError if the owning tenant or the road is missing."""
        tenant = self.find_tenant_by_road(road_id)
        if tenant is None:
            raise NotFoundError(
                f"No tenant owns road {road_id}",
                ErrorCode.ROAD_NOT_FOUND,
                road_id=str(road_id)
            )
        manifest = self.road_path(tenant.tenant_id, road_id) / ROAD_MANIFEST
        try:
            return road_from_manifest(_read_manifest(manifest))
        except CorruptRecordError as e:
            logger.warning("Road %s unreadable: %s", road_id, e)
            raise NotFoundError(
                f"Road {road_id} not found in tenant {tenant.tenant_id}",
                ErrorCode.ROAD_NOT_FOUND,
                road_id=str(road_id)
            ) from e

    # =========================================================================
    # AUDIT
    # =========================================================================

    def _log_audit(self, action: str, entity_id: Optional[str] = None, metadata: tuple = ()):
        """Add entry to internal audit log."""
        self._audit_log.append(
            AuditLogEntry.create("storage", action, entity_id, metadata)
        )

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
