"""Hosting provider domain API — attach, inspect and detach hostnames.

The provider versions each endpoint separately, hence the mixed v6/v9/v10
prefixes below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from launchpad.core.config import Settings, get_settings
from launchpad.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

ALREADY_ATTACHED_CODE = "domain_already_in_use"


@dataclass(slots=True)
class AttachResult:
    success: bool
    verified: bool = False
    skipped: bool = False
    error: str | None = None


@dataclass(slots=True)
class DomainConfig:
    verified: bool
    cname: str | None = None
    txt_record: str | None = None


class HostingClient:
    def __init__(self, settings: Settings | None = None, timeout: float = 30.0) -> None:
        self.settings = settings or get_settings()
        self.base_url = self.settings.hosting_api_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return self.settings.hosting_configured

    def _headers(self) -> dict[str, str]:
        if not self.settings.hosting_token:
            raise ConfigurationError("HOSTING_TOKEN is required")
        return {
            "Authorization": f"Bearer {self.settings.hosting_token}",
            "Content-Type": "application/json",
        }

    def _params(self) -> dict[str, str]:
        return {"teamId": self.settings.hosting_team_id} if self.settings.hosting_team_id else {}

    def _project(self) -> str:
        if not self.settings.hosting_project_id:
            raise ConfigurationError("HOSTING_PROJECT_ID is required")
        return self.settings.hosting_project_id

    async def attach(self, hostname: str) -> AttachResult:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                f"{self.base_url}/v10/projects/{self._project()}/domains",
                params=self._params(),
                headers=self._headers(),
                json={"name": hostname},
            )
        if resp.is_success:
            return AttachResult(success=True, verified=bool(resp.json().get("verified")))

        try:
            error = resp.json().get("error") or {}
        except ValueError:
            error = {}
        if error.get("code") == ALREADY_ATTACHED_CODE:
            return AttachResult(success=True, verified=True)
        return AttachResult(
            success=False,
            error=error.get("message") or f"Failed to add domain ({resp.status_code})",
        )

    async def detach(self, hostname: str) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.delete(
                f"{self.base_url}/v9/projects/{self._project()}/domains/{quote(hostname)}",
                params=self._params(),
                headers=self._headers(),
            )
        return resp.is_success

    async def exists(self, hostname: str) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(
                f"{self.base_url}/v9/projects/{self._project()}/domains/{quote(hostname)}",
                params=self._params(),
                headers=self._headers(),
            )
        return resp.is_success

    async def config(self, hostname: str) -> DomainConfig:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(
                f"{self.base_url}/v6/domains/{quote(hostname)}/config",
                params=self._params(),
                headers=self._headers(),
            )
        if not resp.is_success:
            return DomainConfig(verified=False)
        data = resp.json()
        cnames = data.get("cnames") or []
        return DomainConfig(
            verified=not data.get("misconfigured", True),
            cname=cnames[0] if cnames else None,
            txt_record=data.get("txtRecord"),
        )
