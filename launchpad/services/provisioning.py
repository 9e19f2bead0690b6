"""Database provisioner — create, await, migrate and seed a tenant database."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from urllib.parse import quote

from launchpad.core.cancellation import CancelToken
from launchpad.core.config import Settings, get_settings
from launchpad.core.errors import MigrationFailedError, ReadinessTimeoutError, UpstreamError
from launchpad.core.security import generate_db_password
from launchpad.services.management_api import (
    FAILED_STATUSES,
    READY_STATUS,
    ManagementClient,
    SqlRunner,
)
from launchpad.services.migration_catalog import MigrationCatalog, MigrationFile
from launchpad.services.tenant_runtime import TenantRuntimeClient

logger = logging.getLogger(__name__)

REQUIRED_EXTENSIONS_SQL = (
    "CREATE EXTENSION IF NOT EXISTS pgcrypto; CREATE EXTENSION IF NOT EXISTS pg_trgm;"
)


@dataclass(slots=True)
class ProvisionedDatabase:
    ref: str
    api_url: str
    anon_key: str
    service_role_key: str
    db_url: str = field(repr=False)


@dataclass(slots=True)
class SiteConfig:
    site_name: str
    theme_preset: str
    admin_email: str
    features: dict[str, bool] = field(default_factory=dict)


def project_name(slug: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return f"{settings.project_name_prefix}-{slug}"


async def provision_database(
    slug: str,
    *,
    client: ManagementClient | None = None,
    settings: Settings | None = None,
    cancel: CancelToken | None = None,
) -> ProvisionedDatabase:
    """Create an isolated database for *slug* and wait until it is usable.

    Raises:
        ConfigurationError: management credentials are missing.
        UpstreamError: the provider rejected a call or reported a terminal failure.
        ReadinessTimeoutError: the instance did not report ready in time. It may
            still finish provisioning out-of-band.
        OperationCancelled: *cancel* fired between poll iterations.
    """
    settings = settings or get_settings()
    client = client or ManagementClient(settings)
    cancel = cancel or CancelToken()

    db_password = generate_db_password()
    ref = await client.create_project(project_name(slug, settings), db_password)

    await _wait_until_ready(client, ref, settings, cancel)

    keys = await client.get_api_keys(ref)
    anon_key = keys.get("anon")
    service_role_key = keys.get("service_role")
    if not anon_key or not service_role_key:
        raise UpstreamError(
            f"Project {ref} did not return anon/service_role keys. Keys found: "
            + ", ".join(sorted(keys))
        )

    return ProvisionedDatabase(
        ref=ref,
        api_url=f"https://{ref}.supabase.co",
        anon_key=anon_key,
        service_role_key=service_role_key,
        db_url=f"postgresql://postgres:{quote(db_password, safe='')}@db.{ref}.supabase.co:5432/postgres",
    )


async def _wait_until_ready(
    client: ManagementClient,
    ref: str,
    settings: Settings,
    cancel: CancelToken,
) -> None:
    deadline = time.monotonic() + settings.ready_timeout
    while True:
        await cancel.sleep(settings.ready_poll_interval)

        status = await client.get_project_status(ref)
        if status == READY_STATUS:
            logger.info("Project %s is ready", ref)
            return
        if status in FAILED_STATUSES:
            raise UpstreamError(f"Database project creation failed: {status}")

        if time.monotonic() >= deadline:
            raise ReadinessTimeoutError(
                f"Project {ref} was not ready after {settings.ready_timeout:.0f}s. "
                "It may still be provisioning; check the provider dashboard."
            )


async def apply_catalog_to_new_database(
    database_ref: str,
    catalog: MigrationCatalog,
    runner: SqlRunner,
) -> list[MigrationFile]:
    """Enable extensions then apply every catalog migration in order.

    Stops at the first failure with an error naming the file. An empty
    catalog is a warning, not an error.
    """
    migrations = catalog.list_migrations()
    if not migrations:
        logger.warning(
            "No template migrations available; database %s left unmigrated", database_ref
        )
        return []

    await runner.run_sql(database_ref, REQUIRED_EXTENSIONS_SQL)

    applied: list[MigrationFile] = []
    for migration in migrations:
        try:
            await runner.run_sql(database_ref, migration.read_sql())
        except Exception as exc:
            raise MigrationFailedError(migration.filename, exc) from exc
        applied.append(migration)
    logger.info("Applied %d migrations to %s", len(applied), database_ref)
    return applied


async def seed_initial_config(
    database: ProvisionedDatabase,
    site_config: SiteConfig,
    runtime: TenantRuntimeClient | None = None,
) -> None:
    """Upsert branding/theme/features and the first admin. Safe to retry."""
    runtime = runtime or TenantRuntimeClient(database.api_url, database.service_role_key)
    await runtime.put_site_config({
        "branding": {"siteName": site_config.site_name, "logoUrl": None, "faviconUrl": None},
        "theme": {"preset": site_config.theme_preset},
        "features": site_config.features,
    })
    await runtime.ensure_admin(site_config.admin_email)
