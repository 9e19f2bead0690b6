"""Domain allocator — slug rules, availability and hostname reservation.

Availability consults three sources: the tenants table, the tenant_domains
table and the hosting provider. Any one of them claiming the name makes it
unavailable, since a disagreement usually means an orphaned or half-finished
earlier allocation.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from launchpad.core.config import Settings, get_settings
from launchpad.core.errors import ConflictError, InputValidationError, NotFoundError, UpstreamError
from launchpad.models.base import utcnow
from launchpad.models.domain import SslStatus, TenantDomain
from launchpad.models.tenant import Tenant, TenantStatus
from launchpad.services.hosting import AttachResult, DomainConfig, HostingClient

logger = logging.getLogger(__name__)

SLUG_MIN_LENGTH = 2
SLUG_MAX_LENGTH = 63
SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
HOSTNAME_LABEL = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")

RESERVED_SLUGS = frozenset({
    "www", "api", "app", "admin", "mail", "ftp", "ns1", "ns2",
    "blog", "help", "support", "status", "docs", "cdn", "static", "assets",
    "media", "test", "staging", "dev", "demo", "launchpad", "platform", "dashboard",
})

TAKEN = "Subdomain is already taken"


@dataclass(frozen=True, slots=True)
class SlugCheck:
    valid: bool
    reason: str | None = None


class Availability(BaseModel):
    available: bool
    reason: str | None = None
    # which source claimed the name: "format", "tenants", "domains" or "provider"
    source: str | None = None


def validate_slug_format(slug: str) -> SlugCheck:
    """Pure format check: length, characters, reserved words."""
    if len(slug) < SLUG_MIN_LENGTH:
        return SlugCheck(False, f"Must be at least {SLUG_MIN_LENGTH} characters")
    if len(slug) > SLUG_MAX_LENGTH:
        return SlugCheck(False, f"Must be {SLUG_MAX_LENGTH} characters or fewer")
    if not SLUG_PATTERN.match(slug):
        return SlugCheck(
            False,
            "Only lowercase letters, numbers, and hyphens allowed. "
            "Cannot start or end with a hyphen.",
        )
    if slug in RESERVED_SLUGS:
        return SlugCheck(False, "This subdomain is reserved")
    return SlugCheck(True)


def validate_hostname(hostname: str) -> str:
    """Normalize and validate a custom hostname. Raises InputValidationError."""
    name = hostname.strip().lower().rstrip(".")
    labels = name.split(".")
    if len(name) > 253 or len(labels) < 2 or not all(HOSTNAME_LABEL.match(lbl) for lbl in labels):
        raise InputValidationError(f"Invalid hostname: {hostname!r}")
    return name


def subdomain_for(slug: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return f"{slug}.{settings.template_domain}"


async def check_availability(
    session: AsyncSession,
    slug: str,
    hosting: HostingClient | None = None,
    settings: Settings | None = None,
) -> Availability:
    check = validate_slug_format(slug)
    if not check.valid:
        return Availability(available=False, reason=check.reason, source="format")

    settings = settings or get_settings()
    hosting = hosting or HostingClient(settings)
    hostname = subdomain_for(slug, settings)

    stmt = select(Tenant.id).where(Tenant.slug == slug, Tenant.status != TenantStatus.ARCHIVED)
    if (await session.execute(stmt)).first() is not None:
        return Availability(available=False, reason=TAKEN, source="tenants")

    stmt = select(TenantDomain.id).where(TenantDomain.hostname == hostname)
    if (await session.execute(stmt)).first() is not None:
        return Availability(available=False, reason=TAKEN, source="domains")

    if hosting.configured and await hosting.exists(hostname):
        logger.warning("Hostname %s exists at the provider but not in the registry", hostname)
        return Availability(available=False, reason=TAKEN, source="provider")

    return Availability(available=True)


async def allocate_domain(hostname: str, hosting: HostingClient | None = None) -> AttachResult:
    """Attach *hostname* to the shared deployment. Already-attached counts as success."""
    hosting = hosting or HostingClient()
    if not hosting.configured:
        logger.warning("Skipping domain setup for %s: hosting provider not configured", hostname)
        return AttachResult(success=True, skipped=True)
    result = await hosting.attach(hostname)
    if result.success:
        logger.info("Attached %s (verified=%s)", hostname, result.verified)
    return result


async def release_domain(hostname: str, hosting: HostingClient | None = None) -> AttachResult:
    hosting = hosting or HostingClient()
    if not hosting.configured:
        logger.warning("Skipping domain removal for %s: hosting provider not configured", hostname)
        return AttachResult(success=True, skipped=True)
    if await hosting.detach(hostname):
        logger.info("Detached %s", hostname)
        return AttachResult(success=True)
    return AttachResult(success=False, error=f"Failed to remove domain {hostname}")


async def _hostname_taken(session: AsyncSession, hostname: str) -> bool:
    stmt = select(TenantDomain.id).where(TenantDomain.hostname == hostname)
    return (await session.execute(stmt)).first() is not None


async def add_tenant_domain(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    hostname: str,
    *,
    is_primary: bool = False,
    hosting: HostingClient | None = None,
) -> TenantDomain:
    """Allocate *hostname* and bind it to the tenant. Does not commit.

    A primary binding demotes the tenant's current primary domain.
    """
    hostname = validate_hostname(hostname)
    if await _hostname_taken(session, hostname):
        raise ConflictError(f"Hostname {hostname} is already bound to a tenant")

    result = await allocate_domain(hostname, hosting)
    if not result.success:
        raise UpstreamError(result.error or f"Failed to add domain {hostname}")

    if is_primary:
        await session.execute(
            update(TenantDomain)
            .where(TenantDomain.tenant_id == tenant_id, TenantDomain.is_primary == True)  # noqa: E712
            .values(is_primary=False)
        )

    domain = TenantDomain(
        tenant_id=tenant_id,
        hostname=hostname,
        is_primary=is_primary,
        ssl_status=SslStatus.ACTIVE if result.verified else SslStatus.PENDING,
        verified_at=utcnow() if result.verified else None,
    )
    session.add(domain)
    return domain


async def remove_tenant_domain(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    hostname: str,
    hosting: HostingClient | None = None,
) -> None:
    stmt = select(TenantDomain).where(
        TenantDomain.tenant_id == tenant_id, TenantDomain.hostname == hostname.lower(),
    )
    domain = (await session.execute(stmt)).scalar_one_or_none()
    if domain is None:
        raise NotFoundError(f"Hostname {hostname} is not bound to this tenant")

    result = await release_domain(domain.hostname, hosting)
    if not result.success:
        raise UpstreamError(result.error or f"Failed to remove domain {hostname}")
    await session.delete(domain)
    await session.commit()


async def verify_domain(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    hostname: str,
    hosting: HostingClient | None = None,
) -> DomainConfig:
    """Refresh the SSL/verification state of a bound hostname from the provider."""
    hosting = hosting or HostingClient()
    stmt = select(TenantDomain).where(
        TenantDomain.tenant_id == tenant_id, TenantDomain.hostname == hostname.lower(),
    )
    domain = (await session.execute(stmt)).scalar_one_or_none()
    if domain is None:
        raise NotFoundError(f"Hostname {hostname} is not bound to this tenant")
    if not hosting.configured:
        return DomainConfig(verified=domain.ssl_status == SslStatus.ACTIVE)

    config = await hosting.config(domain.hostname)
    if config.verified and domain.ssl_status != SslStatus.ACTIVE:
        domain.ssl_status = SslStatus.ACTIVE
        domain.verified_at = utcnow()
        session.add(domain)
        await session.commit()
    return config
