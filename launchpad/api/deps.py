"""FastAPI dependencies: admin guard, registry session, injected collaborators."""

import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from launchpad.core.config import get_settings
from launchpad.core.database import get_session
from launchpad.core.errors import InputValidationError
from launchpad.core.security import verify_admin_key
from launchpad.services.credentials import runtime_client_for
from launchpad.services.feature_flags import RuntimeResolver
from launchpad.services.hosting import HostingClient
from launchpad.services.management_api import ManagementClient
from launchpad.services.migration_catalog import MigrationCatalog


async def require_admin(
    x_admin_key: Annotated[str | None, Header(alias="X-Admin-Key")] = None,
) -> None:
    """Reject the request unless X-Admin-Key matches ADMIN_API_KEY."""
    if not verify_admin_key(x_admin_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_catalog(request: Request) -> MigrationCatalog:
    """The catalog resolved at startup, resolved lazily if startup was skipped."""
    catalog = getattr(request.app.state, "catalog", None)
    if catalog is None:
        catalog = MigrationCatalog.resolve(get_settings().template_migration_dirs)
        request.app.state.catalog = catalog
    return catalog


def get_management_client() -> ManagementClient:
    return ManagementClient()


def get_hosting_client() -> HostingClient:
    return HostingClient()


def get_runtime_resolver() -> RuntimeResolver:
    return runtime_client_for


def parse_uuid(value: str, what: str = "tenant ID") -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise InputValidationError(f"Invalid {what} format") from exc


# Typed shorthand for use in route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
Catalog = Annotated[MigrationCatalog, Depends(get_catalog)]
Management = Annotated[ManagementClient, Depends(get_management_client)]
Hosting = Annotated[HostingClient, Depends(get_hosting_client)]
Runtime = Annotated[RuntimeResolver, Depends(get_runtime_resolver)]
