"""Feature flag propagation endpoints."""

from fastapi import APIRouter
from pydantic import StrictBool

from launchpad.api.deps import Runtime, Session, parse_uuid
from launchpad.core.errors import InputValidationError, NotFoundError, PartialFailure
from launchpad.models.base import CamelModel
from launchpad.models.tenant import Tenant
from launchpad.services.feature_flags import (
    FlagPropagationResult,
    FleetPropagationResult,
    propagate_to_fleet,
    propagate_to_tenant,
    sync_runtime_flags,
)

router = APIRouter(prefix="/features", tags=["features"])


class FlagsRequest(CamelModel):
    flags: dict[str, StrictBool]


class FleetPropagationResponse(FleetPropagationResult):
    message: str


class RuntimeSyncResponse(CamelModel):
    tenant_id: str
    flags: dict[str, bool]


def _require_flags(body: FlagsRequest) -> dict[str, bool]:
    if not body.flags:
        raise InputValidationError("flags must be a non-empty object of { flagName: boolean }")
    return body.flags


@router.post(
    "",
    response_model=FleetPropagationResponse,
    summary="Add new default flags to every active tenant",
    responses={207: {"description": "Some tenants reported errors"}},
)
async def propagate_all(
    body: FlagsRequest, session: Session, runtime: Runtime,
) -> FleetPropagationResponse:
    """Only adds flags a tenant does not have yet; existing values are never changed."""
    flags = _require_flags(body)
    batch = await propagate_to_fleet(session, flags, runtime)
    message = f"Propagated {len(flags)} flag(s) to {batch.tenants_updated} tenant(s)"
    if batch.errors:
        raise PartialFailure(
            f"{message}; {len(batch.errors)} tenant(s) reported errors",
            [r.model_dump(mode="json", by_alias=True) for r in batch.results],
        )
    return FleetPropagationResponse(**batch.model_dump(), message=message)


@router.post(
    "/{tenant_id}",
    response_model=FlagPropagationResult,
    summary="Add new default flags to one tenant",
)
async def propagate_one(
    tenant_id: str, body: FlagsRequest, session: Session, runtime: Runtime,
) -> FlagPropagationResult:
    tid = parse_uuid(tenant_id)
    if await session.get(Tenant, tid) is None:
        raise NotFoundError("Tenant not found")
    return await propagate_to_tenant(session, tid, _require_flags(body), runtime)


@router.post(
    "/{tenant_id}/sync",
    response_model=RuntimeSyncResponse,
    summary="Re-push the registry flag map to the tenant runtime",
)
async def sync_one(tenant_id: str, session: Session, runtime: Runtime) -> RuntimeSyncResponse:
    tid = parse_uuid(tenant_id)
    flags = await sync_runtime_flags(session, tid, runtime)
    return RuntimeSyncResponse(tenant_id=str(tid), flags=flags)
