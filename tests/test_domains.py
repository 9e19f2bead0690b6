"""Domain allocator: slug rules, three-source availability, hostname bindings."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlmodel import select

from launchpad.core.config import Settings
from launchpad.core.errors import ConflictError, InputValidationError, NotFoundError, UpstreamError
from launchpad.models.domain import SslStatus, TenantDomain
from launchpad.models.tenant import TenantStatus
from launchpad.services.domains import (
    add_tenant_domain,
    allocate_domain,
    check_availability,
    remove_tenant_domain,
    subdomain_for,
    validate_hostname,
    validate_slug_format,
    verify_domain,
)
from launchpad.services.hosting import HostingClient


@pytest.mark.parametrize("slug", ["ab", "acme", "acme-homes", "a1", "x" * 63, "9lives"])
def test_valid_slugs(slug):
    assert validate_slug_format(slug).valid


@pytest.mark.parametrize(
    ("slug", "reason"),
    [
        ("a", "at least 2"),
        ("x" * 64, "63 characters or fewer"),
        ("-acme", "Cannot start or end with a hyphen"),
        ("acme-", "Cannot start or end with a hyphen"),
        ("Acme", "lowercase"),
        ("acme_homes", "lowercase"),
        ("acme.homes", "lowercase"),
        ("admin", "reserved"),
        ("www", "reserved"),
    ],
)
def test_invalid_slugs(slug, reason):
    check = validate_slug_format(slug)
    assert not check.valid
    assert reason in check.reason


def test_validate_hostname_normalizes():
    assert validate_hostname("  Www.Acme-Homes.COM. ") == "www.acme-homes.com"


@pytest.mark.parametrize("hostname", ["localhost", "acme..com", "-acme.com", "acme_homes.com", ""])
def test_validate_hostname_rejects(hostname):
    with pytest.raises(InputValidationError):
        validate_hostname(hostname)


def test_subdomain_for_uses_template_domain():
    settings = Settings(template_domain="sites.example.net")
    assert subdomain_for("acme", settings) == "acme.sites.example.net"


@pytest.mark.asyncio
async def test_available_slug(session, hosting):
    result = await check_availability(session, "fresh-slug", hosting)
    assert result.available is True
    assert result.reason is None


@pytest.mark.asyncio
async def test_bad_format_is_unavailable(session, hosting):
    result = await check_availability(session, "admin", hosting)
    assert result.available is False
    assert result.source == "format"


@pytest.mark.asyncio
async def test_registered_slug_is_taken(session, make_tenant, hosting):
    await make_tenant("taken")
    result = await check_availability(session, "taken", hosting)
    assert (result.available, result.source) == (False, "tenants")
    assert result.reason == "Subdomain is already taken"


@pytest.mark.asyncio
async def test_archived_tenant_frees_its_slug(session, make_tenant, hosting):
    await make_tenant("retired", status=TenantStatus.ARCHIVED)
    result = await check_availability(session, "retired", hosting)
    assert result.available is True


@pytest.mark.asyncio
async def test_bound_hostname_is_taken(session, make_tenant, hosting):
    owner = await make_tenant("owner")
    session.add(TenantDomain(tenant_id=owner.id, hostname=subdomain_for("orphan")))
    await session.commit()

    result = await check_availability(session, "orphan", hosting)
    assert (result.available, result.source) == (False, "domains")


@pytest.mark.asyncio
async def test_provider_only_hostname_is_taken(session, make_hosting):
    hosting = make_hosting(attached={subdomain_for("ghost")})
    result = await check_availability(session, "ghost", hosting)
    assert (result.available, result.source) == (False, "provider")


@pytest.mark.asyncio
async def test_unconfigured_provider_is_not_consulted(session, make_hosting):
    hosting = make_hosting(configured=False, attached={subdomain_for("ghost")})
    result = await check_availability(session, "ghost", hosting)
    assert result.available is True


@pytest.mark.asyncio
async def test_allocate_skips_when_unconfigured(make_hosting):
    hosting = make_hosting(configured=False)
    result = await allocate_domain("acme.example.com", hosting)
    assert result.success is True
    assert result.skipped is True
    assert hosting.attached == set()


@pytest.mark.asyncio
async def test_add_domain_demotes_previous_primary(session, make_tenant, hosting):
    tenant = await make_tenant("primary")
    await add_tenant_domain(session, tenant.id, "primary.red-bricks.app", is_primary=True, hosting=hosting)
    await session.commit()

    custom = await add_tenant_domain(
        session, tenant.id, "WWW.Primary-Homes.com", is_primary=True, hosting=hosting,
    )
    await session.commit()

    assert custom.hostname == "www.primary-homes.com"
    assert custom.ssl_status == SslStatus.ACTIVE
    assert "www.primary-homes.com" in hosting.attached
    rows = (await session.execute(
        select(TenantDomain).where(TenantDomain.tenant_id == tenant.id)
    )).scalars().all()
    for row in rows:
        await session.refresh(row)
    primaries = [d.hostname for d in rows if d.is_primary]
    assert primaries == ["www.primary-homes.com"]


@pytest.mark.asyncio
async def test_add_domain_rejects_hostname_bound_elsewhere(session, make_tenant, hosting):
    first = await make_tenant("first")
    second = await make_tenant("second")
    await add_tenant_domain(session, first.id, "shared.example.com", hosting=hosting)
    await session.commit()

    with pytest.raises(ConflictError):
        await add_tenant_domain(session, second.id, "shared.example.com", hosting=hosting)


@pytest.mark.asyncio
async def test_add_domain_provider_failure(session, make_tenant, hosting):
    tenant = await make_tenant("rejected")
    hosting.fail_attach.add("bad.example.com")

    with pytest.raises(UpstreamError, match="Invalid domain"):
        await add_tenant_domain(session, tenant.id, "bad.example.com", hosting=hosting)
    assert (await session.execute(select(TenantDomain))).first() is None


@pytest.mark.asyncio
async def test_remove_domain(session, make_tenant, hosting):
    tenant = await make_tenant("removal")
    await add_tenant_domain(session, tenant.id, "gone.example.com", hosting=hosting)
    await session.commit()

    await remove_tenant_domain(session, tenant.id, "gone.example.com", hosting)

    assert "gone.example.com" not in hosting.attached
    assert (await session.execute(select(TenantDomain))).first() is None
    with pytest.raises(NotFoundError):
        await remove_tenant_domain(session, tenant.id, "gone.example.com", hosting)


@pytest.mark.asyncio
async def test_verify_domain_marks_ssl_active(session, make_tenant, make_hosting):
    tenant = await make_tenant("verify")
    hosting = make_hosting()
    session.add(TenantDomain(tenant_id=tenant.id, hostname="pending.example.com"))
    await session.commit()
    hosting.attached.add("pending.example.com")

    config = await verify_domain(session, tenant.id, "pending.example.com", hosting)

    assert config.verified is True
    domain = (await session.execute(select(TenantDomain))).scalar_one()
    assert domain.ssl_status == SslStatus.ACTIVE
    assert domain.verified_at is not None


# ── Hosting provider client ──────────────────────────────────

def _hosting_settings() -> Settings:
    return Settings(hosting_token="tok", hosting_project_id="prj_1", hosting_team_id="team_1")


def _mock_http(method: str, response: httpx.Response) -> AsyncMock:
    mock_client = AsyncMock()
    setattr(mock_client, method, AsyncMock(return_value=response))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    return mock_client


@pytest.mark.asyncio
async def test_hosting_attach_sends_team_scoped_request():
    response = httpx.Response(
        200, json={"name": "acme.example.com", "verified": True},
        request=httpx.Request("POST", "https://api.vercel.com"),
    )
    mock_client = _mock_http("post", response)

    with patch("launchpad.services.hosting.httpx.AsyncClient", return_value=mock_client):
        result = await HostingClient(_hosting_settings()).attach("acme.example.com")

    assert result.success and result.verified
    call = mock_client.post.call_args
    assert call.args[0] == "https://api.vercel.com/v10/projects/prj_1/domains"
    assert call.kwargs["params"] == {"teamId": "team_1"}
    assert call.kwargs["headers"]["Authorization"] == "Bearer tok"
    assert call.kwargs["json"] == {"name": "acme.example.com"}


@pytest.mark.asyncio
async def test_hosting_attach_already_in_use_counts_as_success():
    response = httpx.Response(
        409, json={"error": {"code": "domain_already_in_use", "message": "in use"}},
        request=httpx.Request("POST", "https://api.vercel.com"),
    )
    with patch("launchpad.services.hosting.httpx.AsyncClient", return_value=_mock_http("post", response)):
        result = await HostingClient(_hosting_settings()).attach("acme.example.com")
    assert result.success is True


@pytest.mark.asyncio
async def test_hosting_attach_error_message():
    response = httpx.Response(
        400, json={"error": {"code": "invalid_domain", "message": "Invalid domain name"}},
        request=httpx.Request("POST", "https://api.vercel.com"),
    )
    with patch("launchpad.services.hosting.httpx.AsyncClient", return_value=_mock_http("post", response)):
        result = await HostingClient(_hosting_settings()).attach("acme.example.com")
    assert result.success is False
    assert result.error == "Invalid domain name"


@pytest.mark.asyncio
async def test_hosting_config_reads_misconfigured_flag():
    response = httpx.Response(
        200, json={"misconfigured": False, "cnames": ["cname.vercel-dns.com"]},
        request=httpx.Request("GET", "https://api.vercel.com"),
    )
    with patch("launchpad.services.hosting.httpx.AsyncClient", return_value=_mock_http("get", response)):
        config = await HostingClient(_hosting_settings()).config("acme.example.com")
    assert config.verified is True
    assert config.cname == "cname.vercel-dns.com"
