"""Launch pipeline — turn a launch request into a live tenant.

The HTTP layer calls :func:`create_launch` to register the tenant and its job,
then a worker runs :func:`run_launch`, which walks the six steps below and
records each one on the job as it goes.
"""

from __future__ import annotations

import json
import logging
import uuid

from pydantic import EmailStr, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from launchpad.core.cancellation import CancelToken
from launchpad.core.config import Settings, get_settings
from launchpad.core.errors import (
    ConflictError,
    InputValidationError,
    LaunchpadError,
    NotFoundError,
)
from launchpad.models.base import CamelModel, utcnow
from launchpad.models.credential import CredentialType
from launchpad.models.job import JobType, ProvisioningJob
from launchpad.models.tenant import Tenant, TenantStatus
from launchpad.services.credentials import store_credentials
from launchpad.services.domains import (
    add_tenant_domain,
    check_availability,
    subdomain_for,
    validate_hostname,
    validate_slug_format,
)
from launchpad.services.hosting import HostingClient
from launchpad.services.jobs import create_job, finish_job, tracked_step
from launchpad.services.management_api import ManagementClient
from launchpad.services.migration_catalog import MigrationCatalog
from launchpad.services.provisioning import (
    SiteConfig,
    apply_catalog_to_new_database,
    provision_database,
    seed_initial_config,
)
from launchpad.services.upgrade import commit_schema_version

logger = logging.getLogger(__name__)

LAUNCH_STEPS = (
    "Creating database",
    "Running migrations",
    "Seeding configuration",
    "Configuring domain",
    "Storing credentials",
    "Activating site",
)

DISPLAY_NAME_MAX_LENGTH = 100

# Written by the pipeline itself once the database exists
SYSTEM_CREDENTIALS = frozenset({
    CredentialType.DATABASE_URL,
    CredentialType.DATABASE_API_URL,
    CredentialType.ANON_KEY,
    CredentialType.SERVICE_ROLE_KEY,
})


class LaunchRequest(CamelModel):
    slug: str
    display_name: str
    admin_email: EmailStr
    template: str = "preconstruction-v1"
    theme_preset: str = "luxury-blue"
    features: dict[str, bool] = Field(default_factory=dict)
    custom_domain: str | None = None
    owner_account_id: str | None = None
    # Optional provider keys collected at launch time
    credentials: dict[CredentialType, str] = Field(default_factory=dict)


async def create_launch(
    session: AsyncSession,
    request: LaunchRequest,
    hosting: HostingClient | None = None,
) -> tuple[Tenant, ProvisioningJob]:
    """Validate and register a new tenant plus its pending launch job.

    Raises:
        InputValidationError: bad slug, display name, hostname or credential type.
        ConflictError: the slug is claimed by the registry or the hosting provider.
    """
    slug = request.slug.strip().lower()
    check = validate_slug_format(slug)
    if not check.valid:
        raise InputValidationError(check.reason or "Invalid slug format")

    display_name = request.display_name.strip()
    if not display_name:
        raise InputValidationError("displayName is required")
    if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
        raise InputValidationError(
            f"Display name must be {DISPLAY_NAME_MAX_LENGTH} characters or fewer"
        )

    if request.custom_domain:
        validate_hostname(request.custom_domain)

    reserved = SYSTEM_CREDENTIALS.intersection(request.credentials)
    if reserved:
        raise InputValidationError(
            "Credential types set by provisioning cannot be supplied: "
            + ", ".join(sorted(reserved))
        )

    availability = await check_availability(session, slug, hosting)
    if not availability.available:
        raise ConflictError(availability.reason or "This subdomain is already taken")

    tenant = Tenant(
        slug=slug,
        display_name=display_name,
        status=TenantStatus.PROVISIONING,
        template=request.template,
        theme_preset=request.theme_preset,
        admin_email=str(request.admin_email),
        owner_account_id=request.owner_account_id,
    )
    tenant.feature_flags = json.dumps(request.features, sort_keys=True)
    session.add(tenant)
    try:
        await session.flush()
        await store_credentials(
            session,
            tenant.id,
            {ctype: value for ctype, value in request.credentials.items() if value},
        )
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("This subdomain is already taken") from exc
    except LaunchpadError:
        await session.rollback()
        raise

    job = await create_job(session, JobType.LAUNCH, tenant.id, LAUNCH_STEPS)
    logger.info("Registered tenant %s (job %s)", slug, job.id)
    return tenant, job


# ── Pipeline ─────────────────────────────────────────────────

async def _save_tenant(session: AsyncSession, tenant: Tenant, **values: object) -> None:
    for key, value in values.items():
        setattr(tenant, key, value)
    tenant.row_version += 1
    tenant.updated_at = utcnow()
    session.add(tenant)
    await session.commit()


async def run_launch(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    job_id: uuid.UUID,
    catalog: MigrationCatalog,
    *,
    custom_domain: str | None = None,
    client: ManagementClient | None = None,
    hosting: HostingClient | None = None,
    settings: Settings | None = None,
    cancel: CancelToken | None = None,
) -> ProvisioningJob:
    """Provision, migrate, seed, route and activate one tenant.

    ``database_ref`` is stored as soon as the database exists and
    ``schema_version`` only once every catalog migration has been applied, so
    a failed launch can be resumed by the upgrade engine. Any failure fails
    the job and suspends the tenant. A custom domain that cannot be attached
    is only a warning, since the default subdomain still serves the site.
    """
    settings = settings or get_settings()
    client = client or ManagementClient(settings)
    hosting = hosting or HostingClient(settings)
    cancel = cancel or CancelToken()

    tenant = await session.get(Tenant, tenant_id)
    job = await session.get(ProvisioningJob, job_id)
    if tenant is None or job is None:
        raise NotFoundError(f"Launch job {job_id} for tenant {tenant_id} not found")
    slug = tenant.slug

    try:
        async with tracked_step(session, job, 0):
            database = await provision_database(slug, client=client, settings=settings, cancel=cancel)
            await _save_tenant(session, tenant, database_ref=database.ref)
            logger.info("Created database %s for %s", database.ref, slug)

        cancel.raise_if_cancelled()
        async with tracked_step(session, job, 1):
            applied = await apply_catalog_to_new_database(database.ref, catalog, client)
            latest = catalog.latest_version()
            if applied and latest:
                await commit_schema_version(session, tenant, latest)

        cancel.raise_if_cancelled()
        async with tracked_step(session, job, 2):
            await seed_initial_config(
                database,
                SiteConfig(
                    site_name=tenant.display_name,
                    theme_preset=tenant.theme_preset,
                    admin_email=tenant.admin_email,
                    features=tenant.flags,
                ),
            )

        async with tracked_step(session, job, 3) as step:
            await add_tenant_domain(
                session,
                tenant.id,
                subdomain_for(slug, settings),
                is_primary=True,
                hosting=hosting,
            )
            await session.commit()
            if custom_domain:
                step.warning = await _attach_custom_domain(
                    session, tenant.id, custom_domain, hosting,
                )

        async with tracked_step(session, job, 4):
            await store_credentials(session, tenant.id, {
                CredentialType.DATABASE_URL: database.db_url,
                CredentialType.DATABASE_API_URL: database.api_url,
                CredentialType.ANON_KEY: database.anon_key,
                CredentialType.SERVICE_ROLE_KEY: database.service_role_key,
            })
            await session.commit()

        async with tracked_step(session, job, 5):
            await _save_tenant(session, tenant, status=TenantStatus.ACTIVE)

    except Exception as exc:
        if not isinstance(exc, LaunchpadError):
            logger.exception("Unexpected error launching %s", slug)
        await _abort_launch(session, tenant, job, str(exc) or exc.__class__.__name__)
        return job

    await finish_job(session, job)
    logger.info("Launched %s", slug)
    return job


async def _attach_custom_domain(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    hostname: str,
    hosting: HostingClient,
) -> str | None:
    """Bind the custom domain as primary, demoting the subdomain.

    Returns a warning instead of raising.
    """
    try:
        await add_tenant_domain(session, tenant_id, hostname, is_primary=True, hosting=hosting)
    except LaunchpadError as exc:
        # raised before anything was added to the session
        logger.warning("Custom domain %s not attached: %s", hostname, exc)
        return f"Custom domain {hostname} not attached: {exc}"
    await session.commit()
    return None


async def _abort_launch(
    session: AsyncSession, tenant: Tenant, job: ProvisioningJob, error: str
) -> None:
    await session.rollback()
    await session.refresh(job)
    await session.refresh(tenant)
    if not job.is_finished:
        await finish_job(session, job, error=error)
    await _save_tenant(session, tenant, status=TenantStatus.SUSPENDED)
