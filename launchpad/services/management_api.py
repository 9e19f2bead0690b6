"""Client for the remote database management API.

Creates isolated tenant database instances, reports their status, hands out
their API keys and runs SQL against them.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from launchpad.core.config import Settings, get_settings
from launchpad.core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

READY_STATUS = "ACTIVE_HEALTHY"
FAILED_STATUSES = frozenset({"INACTIVE", "REMOVED"})


class SqlRunner(Protocol):
    """Anything able to execute SQL against a tenant database by ref."""

    async def run_sql(self, database_ref: str, sql: str) -> None: ...


def _body_of(resp: httpx.Response) -> str:
    return resp.text[:2000]


class ManagementClient:
    def __init__(self, settings: Settings | None = None, timeout: float = 60.0) -> None:
        self.settings = settings or get_settings()
        self.base_url = self.settings.management_api_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        token = self.settings.management_api_token
        if not token:
            raise ConfigurationError("MANAGEMENT_API_TOKEN is required")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def require_configured(self) -> None:
        """Fail fast before a batch when credentials are missing."""
        self._headers()

    async def create_project(self, name: str, db_password: str, plan: str = "free") -> str:
        """Create a database instance and return its ref."""
        headers = self._headers()
        if not self.settings.organization_id:
            raise ConfigurationError("ORGANIZATION_ID is required for provisioning")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                f"{self.base_url}/projects",
                headers=headers,
                json={
                    "name": name,
                    "organization_id": self.settings.organization_id,
                    "region": self.settings.default_region,
                    "db_pass": db_password,
                    "plan": plan,
                },
            )
        if not resp.is_success:
            raise UpstreamError(
                f"Failed to create database project ({resp.status_code})",
                status=resp.status_code,
                body=_body_of(resp),
            )
        ref = resp.json()["id"]
        logger.info("Created database project %s (%s)", ref, name)
        return ref

    async def get_project_status(self, ref: str) -> str | None:
        """Current status string, or None if the status call itself failed."""
        headers = self._headers()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(f"{self.base_url}/projects/{ref}", headers=headers)
        if not resp.is_success:
            logger.warning("Status check for %s returned HTTP %d", ref, resp.status_code)
            return None
        return resp.json().get("status")

    async def get_api_keys(self, ref: str) -> dict[str, str]:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(f"{self.base_url}/projects/{ref}/api-keys", headers=headers)
        if not resp.is_success:
            raise UpstreamError(
                f"Failed to fetch API keys for project {ref}",
                status=resp.status_code,
                body=_body_of(resp),
            )
        return {k["name"]: k["api_key"] for k in resp.json() if "name" in k}

    async def run_sql(self, database_ref: str, sql: str) -> None:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                f"{self.base_url}/projects/{database_ref}/database/query",
                headers=headers,
                json={"query": sql},
            )
        if not resp.is_success:
            raise UpstreamError(
                f"SQL execution failed ({resp.status_code}): {_body_of(resp)[:500]}",
                status=resp.status_code,
                body=_body_of(resp),
            )
