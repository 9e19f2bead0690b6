"""ARQ task that runs the launch pipeline for one tenant."""

from __future__ import annotations

import logging
import uuid

from launchpad.core.cancellation import CancelToken
from launchpad.core.config import get_settings
from launchpad.core.database import async_session_factory
from launchpad.core.errors import NotFoundError
from launchpad.services.launch import run_launch
from launchpad.services.migration_catalog import MigrationCatalog

logger = logging.getLogger(__name__)

# Stay under the ARQ job_timeout so the job row is always finalized by us
LAUNCH_DEADLINE_SECONDS = 840


def _catalog(ctx: dict) -> MigrationCatalog:
    catalog = ctx.get("catalog")
    if catalog is None:
        catalog = MigrationCatalog.resolve(get_settings().template_migration_dirs)
        ctx["catalog"] = catalog
    return catalog


async def provision_tenant(
    ctx: dict, tenant_id: str, job_id: str, custom_domain: str | None = None
) -> dict:
    """ARQ task: launch a registered tenant.

    Args:
        ctx: ARQ worker context; ``ctx["catalog"]`` is set at startup.
        tenant_id: UUID of the tenant created by ``POST /admin/tenants``.
        job_id: UUID of its ``launch`` job.
        custom_domain: optional hostname to bind as primary.

    Returns:
        dict with the final job status and error.
    """
    async with async_session_factory() as session:
        try:
            job = await run_launch(
                session,
                uuid.UUID(tenant_id),
                uuid.UUID(job_id),
                _catalog(ctx),
                custom_domain=custom_domain,
                cancel=CancelToken(timeout=LAUNCH_DEADLINE_SECONDS),
            )
        except NotFoundError as exc:
            logger.error("%s", exc)
            return {"error": "not_found"}

    return {"status": str(job.status), "error": job.error}
