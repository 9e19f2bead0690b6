"""Writes into a tenant's own database through its REST endpoint.

Used for seeding and for the runtime ``site_config`` that the tenant's live
application reads at request time. Values are sent as JSON bodies, never
spliced into SQL.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from launchpad.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class TenantRuntimeClient:
    def __init__(self, api_url: str, service_role_key: str, timeout: float = 30.0) -> None:
        self.api_url = api_url.rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates,return=minimal",
        }

    async def upsert(self, table: str, rows: list[dict[str, Any]], on_conflict: str) -> None:
        """Conflict-tolerant insert: re-running it never creates duplicates."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                f"{self.api_url}/rest/v1/{table}",
                params={"on_conflict": on_conflict},
                headers=self._headers(),
                json=rows,
            )
        if not resp.is_success:
            raise UpstreamError(
                f"Failed to upsert into {table} ({resp.status_code})",
                status=resp.status_code,
                body=resp.text[:2000],
            )

    async def put_site_config(self, entries: dict[str, Any]) -> None:
        rows = [{"key": key, "value": json.dumps(value)} for key, value in entries.items()]
        await self.upsert("site_config", rows, on_conflict="key")

    async def put_features(self, flags: dict[str, bool]) -> None:
        await self.put_site_config({"features": flags})
        logger.info("Synced %d feature flags to %s", len(flags), self.api_url)

    async def ensure_admin(self, email: str) -> None:
        await self.upsert("admins", [{"email": email}], on_conflict="email")
