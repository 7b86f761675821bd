"""
Tenant Timeline: API Server
===========================

Thin HTTP surface over the TimelineApplication. Every decision is made by
the core: the TenantManager for data, the AuthorizationResolver for access.
The caller is identified by the X-User-Email header.

Endpoints:
- GET    /health
- GET    /api/v1/tenants                      -> tenants visible as TenantUser
- POST   /api/v1/tenants                      -> create (Global)
- GET    /api/v1/tenants/{resource_id}        -> tenant by tenant or road id
- DELETE /api/v1/tenants/{tenant_id}          -> remove (Global)
- GET    /api/v1/tenants/{tenant_id}/roads    -> roads visible as RoadUser
- GET    /api/v1/roads/{road_id}              -> one road (RoadUser)
- PUT    /api/v1/roads/{road_id}              -> save (TenantManager)
- DELETE /api/v1/roads/{road_id}              -> remove (TenantManager)
- GET    /api/v1/access/{tenant_id}           -> caller's highest level

Usage:
    uvicorn timeline.api.server:app --reload
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..authorization import AccessLevel
from ..contracts.base import ErrorCode, NotFoundError, TimelineError, ValidationError, sanitize_for_log
from ..engine import TimelineApplication, TimelineConfig
from ..observability import configure_logging
from .mapper import (
    RoadBody, TenantBody, body_to_road, body_to_tenant, map_road_to_dto, map_tenant_to_dto,
)


logger = logging.getLogger(__name__)

# Global checks are never evaluated against a real (or the demo) tenant
_NO_TENANT = uuid.UUID(int=0)


def _default_factory() -> TimelineApplication:
    configure_logging()
    return TimelineApplication(TimelineConfig.from_env())


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(factory: Optional[Callable[[], TimelineApplication]] = None) -> FastAPI:
    """Build the FastAPI app; `factory` supplies the TimelineApplication."""
    build = factory or _default_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        timeline = build()
        await timeline.start()
        app.state.timeline = timeline
        try:
            yield
        finally:
            await timeline.stop()
            app.state.timeline = None

    app = FastAPI(
        title="Tenant Timeline API",
        version="0.1.0",
        description="Tenants, roads and access decisions for the timeline publisher",
        lifespan=lifespan
    )
    app.state.timeline = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ValidationError, _unprocessable)
    app.add_exception_handler(TimelineError, _server_error)
    app.include_router(_router())
    return app


async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": exc.code.name, "message": str(exc)})


async def _unprocessable(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"error": exc.code.name, "message": str(exc)})


async def _server_error(request: Request, exc: TimelineError):
    logger.warning("Request failed: %s", exc)
    return JSONResponse(status_code=503, content={"error": exc.code.name, "message": str(exc)})


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_timeline(request: Request) -> TimelineApplication:
    timeline = request.app.state.timeline
    if timeline is None:
        raise HTTPException(status_code=503, detail="Application not initialized")
    return timeline


def caller_email(x_user_email: Optional[str] = Header(default=None)) -> str:
    return (x_user_email or "").strip()


async def _require(
    timeline: TimelineApplication,
    email: str,
    tenant_id: uuid.UUID,
    road_id: Optional[uuid.UUID],
    level: AccessLevel
):
    if not await timeline.resolver.is_authorized(email, tenant_id, road_id, level):
        logger.info(
            "Denied %s for %s on tenant %s",
            level.name, sanitize_for_log(email) or "anonymous", tenant_id
        )
        raise HTTPException(status_code=403, detail=f"{level.name} access required")


# =============================================================================
# ENDPOINTS
# =============================================================================

def _router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health_check(request: Request):
        """System status."""
        timeline = request.app.state.timeline
        if timeline is None:
            raise HTTPException(status_code=503, detail="Application not initialized")
        last_refresh = timeline.cache.last_refresh
        return {
            "status": "online",
            "cache_refreshed_at": last_refresh.isoformat() if last_refresh else None,
        }

    @router.get("/api/v1/tenants")
    async def list_tenants(
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        visible = []
        for tenant in await timeline.manager.list_tenants():
            if await timeline.resolver.is_authorized(email, tenant.tenant_id, None, AccessLevel.TENANT_USER):
                visible.append(map_tenant_to_dto(tenant))
        return {"tenants": visible}

    @router.post("/api/v1/tenants", status_code=201)
    async def create_tenant(
        body: TenantBody,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        await _require(timeline, email, _NO_TENANT, None, AccessLevel.GLOBAL)
        tenant = await timeline.manager.create_tenant(body_to_tenant(body))
        return map_tenant_to_dto(tenant)

    @router.get("/api/v1/tenants/{resource_id}")
    async def get_tenant(
        resource_id: uuid.UUID,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        """Accepts a tenant id or the id of a road inside the tenant."""
        tenant = await timeline.manager.get_tenant(resource_id)
        await _require(timeline, email, tenant.tenant_id, None, AccessLevel.TENANT_USER)
        return map_tenant_to_dto(tenant)

    @router.delete("/api/v1/tenants/{tenant_id}", status_code=204)
    async def remove_tenant(
        tenant_id: uuid.UUID,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        await _require(timeline, email, _NO_TENANT, None, AccessLevel.GLOBAL)
        await timeline.manager.remove_tenant(tenant_id)

    @router.get("/api/v1/tenants/{tenant_id}/roads")
    async def list_roads(
        tenant_id: uuid.UUID,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        if await timeline.manager.find_tenant(tenant_id) is None:
            raise NotFoundError(f"No tenant with id {tenant_id}", tenant_id=str(tenant_id))
        visible = []
        for road in await timeline.manager.list_roads(tenant_id):
            if await timeline.resolver.is_authorized(email, tenant_id, road.road_id, AccessLevel.ROAD_USER):
                visible.append(map_road_to_dto(road, include_addresses=False))
        return {"roads": visible}

    @router.get("/api/v1/roads/{road_id}")
    async def get_road(
        road_id: uuid.UUID,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        road = await timeline.manager.get_road(road_id)
        await _require(timeline, email, road.tenant_id, road.road_id, AccessLevel.ROAD_USER)
        return map_road_to_dto(road)

    @router.put("/api/v1/roads/{road_id}")
    async def save_road(
        road_id: uuid.UUID,
        body: RoadBody,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        try:
            road = body_to_road(road_id, body)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        await _require(timeline, email, road.tenant_id, None, AccessLevel.TENANT_MANAGER)
        if await timeline.manager.find_tenant(road.tenant_id) is None:
            raise NotFoundError(f"No tenant with id {road.tenant_id}", tenant_id=str(road.tenant_id))

        current = await timeline.manager.find_tenant_by_road(road_id)
        if current is not None and current.tenant_id != road.tenant_id:
            await _require(timeline, email, current.tenant_id, None, AccessLevel.TENANT_MANAGER)
            await timeline.manager.remove_road(road_id)

        if not await timeline.manager.save_road(road):
            raise NotFoundError(f"No tenant with id {road.tenant_id}", tenant_id=str(road.tenant_id))
        return map_road_to_dto(road)

    @router.delete("/api/v1/roads/{road_id}", status_code=204)
    async def remove_road(
        road_id: uuid.UUID,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        tenant = await timeline.manager.find_tenant_by_road(road_id)
        if tenant is None:
            raise NotFoundError(
                f"No tenant owns road {road_id}", ErrorCode.ROAD_NOT_FOUND, road_id=str(road_id)
            )
        await _require(timeline, email, tenant.tenant_id, None, AccessLevel.TENANT_MANAGER)
        await timeline.manager.remove_road(road_id)

    @router.get("/api/v1/access/{tenant_id}")
    async def get_access(
        tenant_id: uuid.UUID,
        road_id: Optional[uuid.UUID] = None,
        timeline: TimelineApplication = Depends(get_timeline),
        email: str = Depends(caller_email)
    ):
        level = await timeline.resolver.highest_access_level(email, tenant_id, road_id)
        return {
            "tenant_id": str(tenant_id),
            "road_id": str(road_id) if road_id else None,
            "access_level": level.name if level is not None else None,
        }

    return router


app = create_app()
