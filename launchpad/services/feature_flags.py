"""Feature flag propagation.

New default flags are merged into each tenant by key only: a flag the tenant
already has keeps its value, whatever it is, because it may be a deliberate
customization. Merged flags go to the registry first, then to the tenant's
runtime ``site_config``.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from launchpad.core.errors import ConcurrentModificationError, NotFoundError
from launchpad.models.base import CamelModel, utcnow
from launchpad.models.tenant import Tenant, TenantStatus
from launchpad.services.credentials import runtime_client_for
from launchpad.services.tenant_runtime import TenantRuntimeClient

logger = logging.getLogger(__name__)

RuntimeResolver = Callable[[AsyncSession, uuid.UUID], Awaitable[TenantRuntimeClient]]


class PropagationStatus(StrEnum):
    UNCHANGED = "unchanged"
    PROPAGATED = "propagated"
    REGISTRY_FAILED = "registry_failed"
    # Registry has the new flags, the tenant's live config is still stale
    RUNTIME_SYNC_FAILED = "runtime_sync_failed"


class FlagPropagationResult(CamelModel):
    tenant_id: str
    slug: str
    status: PropagationStatus
    added: list[str] = []
    skipped: list[str] = []
    error: str | None = None


class FleetPropagationResult(CamelModel):
    total_tenants: int = 0
    tenants_updated: int = 0
    total_flags_added: int = 0
    results: list[FlagPropagationResult] = []

    @property
    def errors(self) -> list[FlagPropagationResult]:
        return [r for r in self.results if r.error]


def merge_flags(
    existing: Mapping[str, bool], new_defaults: Mapping[str, bool]
) -> tuple[dict[str, bool], list[str], list[str]]:
    """Union on keys. Returns (merged, added, skipped); never overwrites."""
    merged = dict(existing)
    added: list[str] = []
    skipped: list[str] = []
    for flag, default in new_defaults.items():
        if flag in existing:
            skipped.append(flag)
        else:
            merged[flag] = default
            added.append(flag)
    return merged, added, skipped


async def _write_registry_flags(session: AsyncSession, tenant: Tenant, flags: dict[str, bool]) -> None:
    stmt = (
        update(Tenant)
        .where(Tenant.id == tenant.id, Tenant.row_version == tenant.row_version)
        .values(
            feature_flags=json.dumps(flags, sort_keys=True),
            row_version=tenant.row_version + 1,
            updated_at=utcnow(),
        )
    )
    slug = tenant.slug
    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        raise ConcurrentModificationError(f"Tenant {slug} was modified concurrently")
    await session.commit()
    await session.refresh(tenant)


async def propagate_to_tenant(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    new_defaults: Mapping[str, bool],
    runtime_resolver: RuntimeResolver = runtime_client_for,
) -> FlagPropagationResult:
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        return FlagPropagationResult(
            tenant_id=str(tenant_id),
            slug="unknown",
            status=PropagationStatus.REGISTRY_FAILED,
            error="Tenant not found",
        )

    merged, added, skipped = merge_flags(tenant.flags, new_defaults)
    result = FlagPropagationResult(
        tenant_id=str(tenant.id),
        slug=tenant.slug,
        status=PropagationStatus.UNCHANGED,
        added=added,
        skipped=skipped,
    )
    if not added:
        return result

    try:
        await _write_registry_flags(session, tenant, merged)
    except Exception as exc:
        await session.rollback()
        logger.warning("Registry flag update failed for %s: %s", result.slug, exc)
        result.status = PropagationStatus.REGISTRY_FAILED
        result.added = []
        result.error = f"Failed to update registry: {exc}"
        return result

    result.status = PropagationStatus.PROPAGATED
    if tenant.database_ref:
        try:
            runtime = await runtime_resolver(session, tenant.id)
            await runtime.put_features(merged)
        except Exception as exc:
            logger.warning("Runtime flag sync failed for %s: %s", result.slug, exc)
            result.status = PropagationStatus.RUNTIME_SYNC_FAILED
            result.error = f"Registry updated but tenant runtime config failed: {exc}"
            return result

    logger.info("Added %d flags to %s: %s", len(added), tenant.slug, ", ".join(added))
    return result


async def sync_runtime_flags(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    runtime_resolver: RuntimeResolver = runtime_client_for,
) -> dict[str, bool]:
    """Push the registry's flag map to the tenant runtime. Retry path for stale runtimes."""
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    runtime = await runtime_resolver(session, tenant.id)
    flags = tenant.flags
    await runtime.put_features(flags)
    return flags


async def propagate_to_fleet(
    session: AsyncSession,
    new_defaults: Mapping[str, bool],
    runtime_resolver: RuntimeResolver = runtime_client_for,
) -> FleetPropagationResult:
    """Additive propagation to every active tenant, sequentially."""
    stmt = (
        select(Tenant.id)
        .where(Tenant.status == TenantStatus.ACTIVE)
        .order_by(Tenant.created_at.asc())  # type: ignore[union-attr]
    )
    tenant_ids = list((await session.execute(stmt)).scalars().all())

    batch = FleetPropagationResult(total_tenants=len(tenant_ids))
    for tenant_id in tenant_ids:
        try:
            result = await propagate_to_tenant(session, tenant_id, new_defaults, runtime_resolver)
        except Exception as exc:
            logger.exception("Unexpected error propagating flags to %s", tenant_id)
            await session.rollback()
            result = FlagPropagationResult(
                tenant_id=str(tenant_id),
                slug="unknown",
                status=PropagationStatus.REGISTRY_FAILED,
                error=f"Unexpected error: {exc}",
            )
        batch.results.append(result)
        if result.status in (PropagationStatus.PROPAGATED, PropagationStatus.RUNTIME_SYNC_FAILED):
            batch.tenants_updated += 1
            batch.total_flags_added += len(result.added)

    if batch.errors:
        logger.warning(
            "Flag propagation: %d of %d tenants reported errors",
            len(batch.errors), batch.total_tenants,
        )
    return batch
