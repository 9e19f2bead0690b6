"""Schema upgrade engine.

Each tenant records ``schema_version``, the version of the last template
migration applied to its database. Upgrading runs only the newer migrations,
one at a time, committing the tenant's version after each one. A crash, timeout
or failed migration therefore leaves the recorded version equal to what was
really applied, and the next attempt resumes from there.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import StrEnum

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from launchpad.core.cancellation import CancelToken
from launchpad.core.errors import ConcurrentModificationError, LaunchpadError, MigrationFailedError
from launchpad.models.base import CamelModel, utcnow
from launchpad.models.job import JobStatus, JobType, ProvisioningJob
from launchpad.models.tenant import Tenant, TenantStatus
from launchpad.services.jobs import append_step, create_job, finish_job
from launchpad.services.management_api import SqlRunner
from launchpad.services.migration_catalog import MigrationCatalog

logger = logging.getLogger(__name__)


class UpgradeStatus(StrEnum):
    UPGRADED = "upgraded"
    SKIPPED = "skipped"
    FAILED = "failed"


class TenantUpgradeResult(CamelModel):
    tenant_id: str
    slug: str
    previous_version: str | None = None
    new_version: str | None = None
    migrations_run: int = 0
    status: UpgradeStatus
    error: str | None = None


class FleetUpgradeResult(CamelModel):
    upgraded: int = 0
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False
    details: list[TenantUpgradeResult] = []

    def record(self, result: TenantUpgradeResult) -> None:
        if result.status == UpgradeStatus.UPGRADED:
            self.upgraded += 1
        elif result.status == UpgradeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
        self.details.append(result)


class TenantVersionStatus(CamelModel):
    id: uuid.UUID
    slug: str
    schema_version: str | None
    pending_migrations: int
    status: TenantStatus


class UpgradeStatusReport(CamelModel):
    latest_version: str | None
    total_migrations: int
    tenants: list[TenantVersionStatus]


class TenantSummary(CamelModel):
    id: uuid.UUID
    slug: str
    display_name: str
    status: TenantStatus
    schema_version: str | None
    has_database: bool
    created_at: datetime


class TenantUpgradeReport(CamelModel):
    tenant: TenantSummary
    latest_version: str | None
    pending_migrations: int
    pending_migration_files: list[str]
    is_up_to_date: bool


ProgressCallback = Callable[[TenantUpgradeResult, int, int], Awaitable[None] | None]


async def commit_schema_version(session: AsyncSession, tenant: Tenant, version: str) -> None:
    """Durably record *version* for *tenant*, guarded by ``row_version``."""
    stmt = (
        update(Tenant)
        .where(Tenant.id == tenant.id, Tenant.row_version == tenant.row_version)
        .values(schema_version=version, row_version=tenant.row_version + 1, updated_at=utcnow())
    )
    slug = tenant.slug
    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        raise ConcurrentModificationError(
            f"Tenant {slug} was modified concurrently; refusing to record {version}"
        )
    await session.commit()
    await session.refresh(tenant)


async def upgrade_tenant(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    catalog: MigrationCatalog,
    runner: SqlRunner,
) -> TenantUpgradeResult:
    """Bring one tenant database up to the catalog's latest version.

    Never raises for tenant-level problems; the outcome is in the result.
    """
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        return TenantUpgradeResult(
            tenant_id=str(tenant_id),
            slug="unknown",
            status=UpgradeStatus.FAILED,
            error="Tenant not found",
        )

    previous = tenant.schema_version
    result = TenantUpgradeResult(
        tenant_id=str(tenant.id),
        slug=tenant.slug,
        previous_version=previous,
        new_version=previous,
        status=UpgradeStatus.SKIPPED,
    )

    if not tenant.database_ref:
        result.status = UpgradeStatus.FAILED
        result.error = "Tenant is not yet provisioned (no database ref)"
        return result

    pending = catalog.migrations_since(previous)
    if not pending:
        return result

    logger.info(
        "Upgrading %s from %s: %d pending migrations", tenant.slug, previous, len(pending)
    )
    for migration in pending:
        try:
            await runner.run_sql(tenant.database_ref, migration.read_sql())
        except Exception as exc:
            error = MigrationFailedError(migration.filename, exc)
            logger.warning("Upgrade of %s stopped: %s", tenant.slug, error)
            result.status = UpgradeStatus.FAILED
            result.error = str(error)
            return result

        try:
            await commit_schema_version(session, tenant, migration.version)
        except ConcurrentModificationError as exc:
            logger.warning("Upgrade of %s stopped: %s", result.slug, exc)
            result.status = UpgradeStatus.FAILED
            result.error = str(exc)
            return result

        result.new_version = migration.version
        result.migrations_run += 1

    result.status = UpgradeStatus.UPGRADED
    logger.info(
        "Upgraded %s to %s (%d migrations)", tenant.slug, result.new_version, result.migrations_run
    )
    return result


async def _eligible_tenant_ids(session: AsyncSession) -> list[uuid.UUID]:
    stmt = (
        select(Tenant.id)
        .where(
            Tenant.status == TenantStatus.ACTIVE,
            Tenant.database_ref.is_not(None),  # type: ignore[union-attr]
        )
        .order_by(Tenant.created_at.asc())  # type: ignore[union-attr]
    )
    return list((await session.execute(stmt)).scalars().all())


async def upgrade_fleet(
    session: AsyncSession,
    catalog: MigrationCatalog,
    runner: SqlRunner,
    progress: ProgressCallback | None = None,
    cancel: CancelToken | None = None,
) -> FleetUpgradeResult:
    """Upgrade every active, provisioned tenant, strictly one after another.

    One tenant's failure never stops the loop. *catalog* is used as-is for
    the whole batch, so files added mid-run wait for the next batch.
    """
    # Missing credentials means no tenant can make progress: abort up front
    require_configured = getattr(runner, "require_configured", None)
    if require_configured is not None:
        require_configured()

    tenant_ids = await _eligible_tenant_ids(session)
    total = len(tenant_ids)
    batch = FleetUpgradeResult()
    logger.info(
        "Fleet upgrade: %d tenants, target version %s", total, catalog.latest_version()
    )

    for index, tenant_id in enumerate(tenant_ids):
        if cancel is not None and cancel.cancelled:
            logger.warning("Fleet upgrade cancelled after %d/%d tenants", index, total)
            batch.cancelled = True
            break

        try:
            result = await upgrade_tenant(session, tenant_id, catalog, runner)
        except Exception as exc:
            logger.exception("Unexpected error upgrading tenant %s", tenant_id)
            await session.rollback()
            result = TenantUpgradeResult(
                tenant_id=str(tenant_id),
                slug="unknown",
                status=UpgradeStatus.FAILED,
                error=f"Unexpected error: {exc}",
            )

        batch.record(result)
        if progress is not None:
            outcome = progress(result, index, total)
            if inspect.isawaitable(outcome):
                await outcome

    logger.info(
        "Fleet upgrade finished: %d upgraded, %d skipped, %d failed",
        batch.upgraded, batch.skipped, batch.failed,
    )
    return batch


async def run_recorded_fleet_upgrade(
    session: AsyncSession,
    catalog: MigrationCatalog,
    runner: SqlRunner,
    cancel: CancelToken | None = None,
) -> tuple[ProvisioningJob, FleetUpgradeResult]:
    """Run a fleet upgrade under an ``upgrade`` job with one step per tenant."""
    job = await create_job(session, JobType.UPGRADE, None)

    async def _record(result: TenantUpgradeResult, index: int, total: int) -> None:
        # a failed tenant may have rolled the session back
        await session.refresh(job)
        status = JobStatus.FAILED if result.status == UpgradeStatus.FAILED else JobStatus.COMPLETED
        await append_step(session, job, f"{result.slug} ({result.status})", status, result.error)

    try:
        batch = await upgrade_fleet(session, catalog, runner, progress=_record, cancel=cancel)
    except LaunchpadError as exc:
        await session.refresh(job)
        await finish_job(session, job, error=str(exc))
        raise

    error = None
    if batch.failed:
        error = f"{batch.failed} of {len(batch.details)} tenants failed to upgrade"
    elif batch.cancelled:
        error = "Fleet upgrade cancelled before every tenant was processed"
    await finish_job(session, job, error=error)
    return job, batch


async def upgrade_status(session: AsyncSession, catalog: MigrationCatalog) -> UpgradeStatusReport:
    stmt = (
        select(Tenant)
        .where(
            Tenant.status == TenantStatus.ACTIVE,
            Tenant.database_ref.is_not(None),  # type: ignore[union-attr]
        )
        .order_by(Tenant.slug.asc())  # type: ignore[attr-defined]
    )
    tenants = (await session.execute(stmt)).scalars().all()
    return UpgradeStatusReport(
        latest_version=catalog.latest_version(),
        total_migrations=len(catalog),
        tenants=[
            TenantVersionStatus(
                id=t.id,
                slug=t.slug,
                schema_version=t.schema_version,
                pending_migrations=catalog.pending_count(t.schema_version),
                status=t.status,
            )
            for t in tenants
        ],
    )


def tenant_upgrade_report(tenant: Tenant, catalog: MigrationCatalog) -> TenantUpgradeReport:
    pending = catalog.migrations_since(tenant.schema_version)
    return TenantUpgradeReport(
        tenant=TenantSummary(
            id=tenant.id,
            slug=tenant.slug,
            display_name=tenant.display_name,
            status=tenant.status,
            schema_version=tenant.schema_version,
            has_database=bool(tenant.database_ref),
            created_at=tenant.created_at,
        ),
        latest_version=catalog.latest_version(),
        pending_migrations=len(pending),
        pending_migration_files=[m.filename for m in pending],
        is_up_to_date=not pending,
    )
