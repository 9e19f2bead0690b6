"""Schema upgrade endpoints: fleet status, fleet upgrade, single-tenant upgrade."""

import uuid

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from launchpad.api.deps import Catalog, Management, Session, parse_uuid
from launchpad.core.errors import NotFoundError
from launchpad.models.tenant import Tenant
from launchpad.services.upgrade import (
    FleetUpgradeResult,
    TenantUpgradeReport,
    TenantUpgradeResult,
    UpgradeStatus,
    UpgradeStatusReport,
    run_recorded_fleet_upgrade,
    tenant_upgrade_report,
    upgrade_status,
    upgrade_tenant,
)

router = APIRouter(tags=["upgrade"])


class FleetUpgradeResponse(FleetUpgradeResult):
    job_id: uuid.UUID
    latest_version: str | None


@router.get(
    "/upgrade-status",
    response_model=UpgradeStatusReport,
    summary="Schema version of every active tenant",
)
async def get_upgrade_status(session: Session, catalog: Catalog) -> UpgradeStatusReport:
    return await upgrade_status(session, catalog)


@router.post(
    "/upgrade",
    response_model=FleetUpgradeResponse,
    summary="Upgrade all active tenants to the latest template schema",
)
async def upgrade_all(
    session: Session, catalog: Catalog, client: Management,
) -> FleetUpgradeResponse:
    """Runs pending migrations on every active tenant, one after another.

    Long-running: prefer the ``upgrade_fleet_task`` worker job for large fleets.
    """
    job, batch = await run_recorded_fleet_upgrade(session, catalog, client)
    return FleetUpgradeResponse(
        **batch.model_dump(),
        job_id=job.id,
        latest_version=catalog.latest_version(),
    )


@router.get(
    "/upgrade/{tenant_id}",
    response_model=TenantUpgradeReport,
    summary="Pending migrations for one tenant",
)
async def get_tenant_upgrade(
    tenant_id: str, session: Session, catalog: Catalog,
) -> TenantUpgradeReport:
    tenant = await session.get(Tenant, parse_uuid(tenant_id))
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant_upgrade_report(tenant, catalog)


@router.post(
    "/upgrade/{tenant_id}",
    response_model=TenantUpgradeResult,
    summary="Upgrade (or retry) a single tenant",
    responses={500: {"model": TenantUpgradeResult}},
)
async def upgrade_one(
    tenant_id: str, session: Session, catalog: Catalog, client: Management,
):
    tenant_uuid = parse_uuid(tenant_id)
    client.require_configured()
    result = await upgrade_tenant(session, tenant_uuid, catalog, client)
    if result.status == UpgradeStatus.FAILED:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result
