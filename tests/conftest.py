"""Shared test fixtures: in-memory registry, fakes for remote services, test client."""

import itertools
import json
import os
from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from pathlib import Path

from cryptography.fernet import Fernet

# Settings are cached on first use, so configure them before importing the app
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

# Import all models so metadata is populated
import launchpad.models  # noqa: E402, F401
from launchpad.api.deps import (  # noqa: E402
    get_catalog,
    get_hosting_client,
    get_management_client,
    get_runtime_resolver,
)
from launchpad.core.database import get_session  # noqa: E402
from launchpad.core.errors import UpstreamError  # noqa: E402
from launchpad.main import app  # noqa: E402
from launchpad.models.base import utcnow  # noqa: E402
from launchpad.models.tenant import Tenant, TenantStatus  # noqa: E402
from launchpad.services.hosting import AttachResult, DomainConfig  # noqa: E402
from launchpad.services.migration_catalog import MigrationCatalog  # noqa: E402

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


# ── Fakes for remote collaborators ────────────────────────────

class FakeRunner:
    """In-memory SqlRunner. Records every statement, fails on demand."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        # database ref -> substring that makes run_sql fail
        self.fail_on: dict[str, str] = {}

    def require_configured(self) -> None:
        pass

    async def run_sql(self, database_ref: str, sql: str) -> None:
        marker = self.fail_on.get(database_ref)
        if marker and marker in sql:
            raise UpstreamError("syntax error at or near \"broken\"", status=400)
        self.calls.append((database_ref, sql))

    def applied(self, database_ref: str) -> list[str]:
        return [sql for ref, sql in self.calls if ref == database_ref]


class FakeHosting:
    """HostingClient stand-in keeping attached hostnames in a set."""

    def __init__(self, configured: bool = True, attached: set[str] | None = None) -> None:
        self.configured = configured
        self.attached: set[str] = set(attached or ())
        self.fail_attach: set[str] = set()

    async def attach(self, hostname: str) -> AttachResult:
        if hostname in self.fail_attach:
            return AttachResult(success=False, error=f"Invalid domain {hostname}")
        self.attached.add(hostname)
        return AttachResult(success=True, verified=True)

    async def detach(self, hostname: str) -> bool:
        self.attached.discard(hostname)
        return True

    async def exists(self, hostname: str) -> bool:
        return hostname in self.attached

    async def config(self, hostname: str) -> DomainConfig:
        return DomainConfig(verified=hostname in self.attached, cname="cname.example-host.net")


class FakeRuntime:
    """Tenant runtime client that records pushed feature maps."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.features: list[dict[str, bool]] = []

    async def put_features(self, flags: dict[str, bool]) -> None:
        if self.fail:
            raise UpstreamError("Failed to upsert into site_config (503)", status=503)
        self.features.append(dict(flags))


# ── Database ──────────────────────────────────────────────────

@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


# ── Registry rows ─────────────────────────────────────────────

@pytest.fixture
def make_tenant(session):
    """Insert a tenant. Creation times are spaced so fleet order is insert order."""
    counter = itertools.count()
    base = utcnow() - timedelta(days=1)

    async def _make(
        slug: str,
        *,
        schema_version: str | None = None,
        provisioned: bool = True,
        status: TenantStatus = TenantStatus.ACTIVE,
        flags: dict[str, bool] | None = None,
    ) -> Tenant:
        tenant = Tenant(
            slug=slug,
            display_name=slug.replace("-", " ").title(),
            status=status,
            schema_version=schema_version,
            database_ref=f"db-{slug}" if provisioned else None,
            feature_flags=json.dumps(flags or {}),
            admin_email=f"owner@{slug}.test",
            created_at=base + timedelta(seconds=next(counter)),
        )
        session.add(tenant)
        await session.commit()
        await session.refresh(tenant)
        return tenant

    return _make


# ── Catalog ───────────────────────────────────────────────────

@pytest.fixture
def make_catalog(tmp_path: Path) -> Callable[..., MigrationCatalog]:
    """Write ``<version>_<name>.sql`` files and load them as a catalog.

    Each file body contains its own version, so FakeRunner.fail_on can target
    a single migration.
    """

    def _make(*versions: str, directory: str = "template-migrations") -> MigrationCatalog:
        folder = tmp_path / directory
        folder.mkdir(parents=True, exist_ok=True)
        for version in versions:
            (folder / f"{version}_step.sql").write_text(
                f"-- migration {version}\ncreate table if not exists t_{version} (id int);\n",
                encoding="utf-8",
            )
        return MigrationCatalog.from_directory(folder)

    return _make


@pytest.fixture
def catalog(make_catalog) -> MigrationCatalog:
    return make_catalog("20250209093900", "20250211000000", "20250212000000")


# ── Collaborators ─────────────────────────────────────────────

@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def hosting() -> FakeHosting:
    return FakeHosting()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def make_runtime() -> Callable[..., FakeRuntime]:
    return FakeRuntime


@pytest.fixture
def make_hosting() -> Callable[..., FakeHosting]:
    return FakeHosting


# ── HTTP client ───────────────────────────────────────────────

@pytest.fixture
def admin_headers() -> dict[str, str]:
    return dict(ADMIN_HEADERS)


@pytest.fixture
async def client(session, catalog, runner, hosting, runtime) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session and collaborators overridden."""

    async def _override_session():
        yield session

    async def _resolve_runtime(_session, _tenant_id):
        return runtime

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_management_client] = lambda: runner
    app.dependency_overrides[get_hosting_client] = lambda: hosting
    app.dependency_overrides[get_runtime_resolver] = lambda: _resolve_runtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
