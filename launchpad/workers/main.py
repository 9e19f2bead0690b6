"""ARQ worker entrypoint."""

import asyncio
import logging

from arq.connections import RedisSettings

from launchpad.core.config import get_settings
from launchpad.services.migration_catalog import MigrationCatalog
from launchpad.workers.provision import provision_tenant
from launchpad.workers.upgrade import upgrade_fleet_task

logger = logging.getLogger(__name__)


def _redis_settings() -> RedisSettings:
    """Parse REDIS_URL into ARQ RedisSettings."""
    settings = get_settings()
    # redis://host:port/db
    rest = settings.redis_url.split("://", 1)[-1]
    host_port, _, db = rest.partition("/")
    host, _, port = host_port.partition(":")
    return RedisSettings(
        host=host or "localhost",
        port=int(port) if port else 6379,
        database=int(db) if db else 0,
    )


async def startup(ctx: dict) -> None:
    """Called when the worker starts: logging, tables, migration catalog."""
    from launchpad.core.database import init_db

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    ctx["catalog"] = MigrationCatalog.resolve(settings.template_migration_dirs)
    logger.info("Worker ready with %d template migrations", len(ctx["catalog"]))


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [provision_tenant, upgrade_fleet_task]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 900  # a launch waits up to READY_TIMEOUT on the provider


if __name__ == "__main__":
    from arq import run_worker
    asyncio.run(run_worker(WorkerSettings))  # type: ignore[arg-type]
