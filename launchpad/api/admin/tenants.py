"""Tenant launch and lifecycle endpoints."""

import logging
import uuid

from arq.connections import ArqRedis, create_pool
from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError
from sqlmodel import select

from launchpad.api.deps import Hosting, Session, parse_uuid
from launchpad.core.errors import NotFoundError, UpstreamError
from launchpad.models.base import CamelModel
from launchpad.models.credential import CredentialType, TenantCredential
from launchpad.models.domain import TenantDomain, TenantDomainRead
from launchpad.models.job import JobRead, JobType
from launchpad.models.tenant import Tenant, TenantRead, TenantStatus
from launchpad.services.credentials import store_credentials
from launchpad.services.domains import add_tenant_domain, remove_tenant_domain, verify_domain
from launchpad.services.jobs import create_job, finish_job, to_read, tracked_step
from launchpad.services.launch import LaunchRequest, create_launch
from launchpad.workers.main import _redis_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])


# ── Request / response schemas ────────────────────────────────

class LaunchAccepted(CamelModel):
    tenant_id: uuid.UUID
    job_id: uuid.UUID


class TenantDetail(TenantRead):
    domains: list[TenantDomainRead]
    # Names only; values never leave the vault
    credential_types: list[CredentialType]


class CredentialsUpdate(CamelModel):
    credentials: dict[CredentialType, str]


class DomainCreate(CamelModel):
    hostname: str
    is_primary: bool = False


class DomainVerification(CamelModel):
    hostname: str
    verified: bool
    cname: str | None = None
    txt_record: str | None = None


# ── Helpers ───────────────────────────────────────────────────

async def _enqueue_launch(
    tenant_id: uuid.UUID, job_id: uuid.UUID, custom_domain: str | None,
) -> None:
    redis: ArqRedis = await create_pool(_redis_settings())
    try:
        await redis.enqueue_job(
            "provision_tenant",
            tenant_id=str(tenant_id),
            job_id=str(job_id),
            custom_domain=custom_domain,
        )
    finally:
        await redis.aclose()


async def _get_tenant(session, tenant_id: str) -> Tenant:
    tenant = await session.get(Tenant, parse_uuid(tenant_id))
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


# ── Routes ────────────────────────────────────────────────────

@router.post(
    "",
    response_model=LaunchAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Launch a new tenant site",
)
async def launch_tenant(body: LaunchRequest, session: Session, hosting: Hosting) -> LaunchAccepted:
    """Register the tenant and queue its launch job. Poll ``/admin/jobs/{jobId}``."""
    tenant, job = await create_launch(session, body, hosting)
    try:
        await _enqueue_launch(tenant.id, job.id, body.custom_domain)
    except (RedisError, OSError) as exc:
        logger.error("Could not enqueue launch for %s: %s", tenant.slug, exc)
        await finish_job(session, job, error=f"Could not enqueue launch: {exc}")
        tenant.status = TenantStatus.SUSPENDED
        tenant.row_version += 1
        session.add(tenant)
        await session.commit()
        raise UpstreamError("Job queue unavailable; launch not started") from exc
    return LaunchAccepted(tenant_id=tenant.id, job_id=job.id)


@router.get("/{tenant_id}", response_model=TenantDetail, summary="Tenant detail with domains")
async def get_tenant(tenant_id: str, session: Session) -> TenantDetail:
    tenant = await _get_tenant(session, tenant_id)

    domains = (await session.execute(
        select(TenantDomain)
        .where(TenantDomain.tenant_id == tenant.id)
        .order_by(TenantDomain.created_at.asc())  # type: ignore[union-attr]
    )).scalars().all()
    credential_types = (await session.execute(
        select(TenantCredential.credential_type).where(TenantCredential.tenant_id == tenant.id)
    )).scalars().all()

    return TenantDetail(
        **tenant.model_dump(exclude={"feature_flags"}),
        feature_flags=tenant.flags,
        domains=[TenantDomainRead.model_validate(d, from_attributes=True) for d in domains],
        credential_types=sorted(credential_types),
    )


@router.put(
    "/{tenant_id}/credentials",
    response_model=JobRead,
    summary="Replace encrypted tenant credentials",
)
async def update_credentials(
    tenant_id: str, body: CredentialsUpdate, session: Session,
) -> JobRead:
    tenant = await _get_tenant(session, tenant_id)
    job = await create_job(session, JobType.UPDATE_KEYS, tenant.id, ["Storing credentials"])
    try:
        async with tracked_step(session, job, 0):
            await store_credentials(session, tenant.id, body.credentials)
            await session.commit()
    except Exception as exc:
        await finish_job(session, job, error=str(exc))
        raise
    await finish_job(session, job)
    return to_read(job)


@router.post(
    "/{tenant_id}/domains",
    response_model=TenantDomainRead,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a custom domain",
)
async def add_domain(
    tenant_id: str, body: DomainCreate, session: Session, hosting: Hosting,
) -> TenantDomainRead:
    tenant = await _get_tenant(session, tenant_id)
    job = await create_job(session, JobType.ADD_DOMAIN, tenant.id, ["Configuring domain"])
    try:
        async with tracked_step(session, job, 0):
            domain = await add_tenant_domain(
                session, tenant.id, body.hostname, is_primary=body.is_primary, hosting=hosting,
            )
            await session.commit()
    except Exception as exc:
        await finish_job(session, job, error=str(exc))
        raise
    await finish_job(session, job)
    return TenantDomainRead.model_validate(domain, from_attributes=True)


@router.post(
    "/{tenant_id}/domains/{hostname}/verify",
    response_model=DomainVerification,
    summary="Refresh a domain's verification state from the provider",
)
async def verify_tenant_domain(
    tenant_id: str, hostname: str, session: Session, hosting: Hosting,
) -> DomainVerification:
    tenant = await _get_tenant(session, tenant_id)
    config = await verify_domain(session, tenant.id, hostname, hosting)
    return DomainVerification(
        hostname=hostname.lower(),
        verified=config.verified,
        cname=config.cname,
        txt_record=config.txt_record,
    )


@router.delete(
    "/{tenant_id}/domains/{hostname}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Release a domain",
)
async def delete_domain(
    tenant_id: str, hostname: str, session: Session, hosting: Hosting,
) -> Response:
    tenant = await _get_tenant(session, tenant_id)
    await remove_tenant_domain(session, tenant.id, hostname, hosting)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
