"""Fleet upgrade as a worker task, off the request path."""

from __future__ import annotations

import logging

from launchpad.core.cancellation import CancelToken
from launchpad.core.config import get_settings
from launchpad.core.database import async_session_factory
from launchpad.core.errors import ConfigurationError
from launchpad.services.management_api import ManagementClient
from launchpad.services.migration_catalog import MigrationCatalog
from launchpad.services.upgrade import run_recorded_fleet_upgrade

logger = logging.getLogger(__name__)

UPGRADE_DEADLINE_SECONDS = 840


async def upgrade_fleet_task(ctx: dict) -> dict:
    """ARQ task: upgrade every active tenant and record an ``upgrade`` job.

    Tenants left over when the deadline passes are picked up by the next run.
    """
    catalog = ctx.get("catalog") or MigrationCatalog.resolve(get_settings().template_migration_dirs)
    async with async_session_factory() as session:
        try:
            job, batch = await run_recorded_fleet_upgrade(
                session,
                catalog,
                ManagementClient(),
                cancel=CancelToken(timeout=UPGRADE_DEADLINE_SECONDS),
            )
        except ConfigurationError as exc:
            logger.error("Fleet upgrade not started: %s", exc)
            return {"error": "not_configured"}

    return {
        "job_id": str(job.id),
        "upgraded": batch.upgraded,
        "skipped": batch.skipped,
        "failed": batch.failed,
        "cancelled": batch.cancelled,
    }
