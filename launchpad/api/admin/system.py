"""Registry, job queue and migration catalog health."""

import time

from fastapi import APIRouter
from pydantic import BaseModel
from redis.asyncio import from_url
from sqlalchemy import text

from launchpad.api.deps import Catalog, Session
from launchpad.core.config import get_settings

router = APIRouter(prefix="/system", tags=["system"])


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    latency_ms: int | None = None


class CatalogHealth(BaseModel):
    directory: str | None
    total_migrations: int
    latest_version: str | None


class HealthResponse(BaseModel):
    status: str
    database: ServiceHealth
    redis: ServiceHealth
    catalog: CatalogHealth
    management_configured: bool
    hosting_configured: bool


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session, catalog: Catalog) -> HealthResponse:
    """Check connectivity to the registry database and Redis; summarize the catalog."""
    settings = get_settings()
    db = await _check_database(session)
    rd = await _check_redis()

    overall = "ok" if db.status == "ok" and rd.status == "ok" and len(catalog) else "degraded"
    return HealthResponse(
        status=overall,
        database=db,
        redis=rd,
        catalog=CatalogHealth(
            directory=str(catalog.directory) if catalog.directory else None,
            total_migrations=len(catalog),
            latest_version=catalog.latest_version(),
        ),
        management_configured=bool(settings.management_api_token and settings.organization_id),
        hosting_configured=settings.hosting_configured,
    )


async def _check_database(session) -> ServiceHealth:
    try:
        t0 = time.monotonic()
        await session.execute(text("SELECT 1"))
        return ServiceHealth(status="ok", latency_ms=int((time.monotonic() - t0) * 1000))
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])


async def _check_redis() -> ServiceHealth:
    try:
        t0 = time.monotonic()
        redis = from_url(get_settings().redis_url, decode_responses=True)
        try:
            pong = await redis.ping()
        finally:
            await redis.aclose()
        return ServiceHealth(
            status="ok" if pong else "error",
            latency_ms=int((time.monotonic() - t0) * 1000),
        )
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])
