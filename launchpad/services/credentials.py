"""Encrypted-at-rest tenant secrets."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from launchpad.core.errors import ConfigurationError
from launchpad.core.security import decrypt_value, encrypt_value
from launchpad.models.base import utcnow
from launchpad.models.credential import CredentialType, TenantCredential
from launchpad.services.tenant_runtime import TenantRuntimeClient


async def store_credentials(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    values: Mapping[CredentialType, str],
) -> list[CredentialType]:
    """Encrypt and upsert credentials keyed by (tenant, type). Does not commit."""
    if not values:
        return []

    # Encrypt everything first so a missing key fails before any write
    encrypted = {ctype: encrypt_value(plain) for ctype, plain in values.items()}

    stmt = select(TenantCredential).where(
        TenantCredential.tenant_id == tenant_id,
        TenantCredential.credential_type.in_(list(encrypted)),  # type: ignore[attr-defined]
    )
    existing = {c.credential_type: c for c in (await session.execute(stmt)).scalars().all()}

    now = utcnow()
    for ctype, ciphertext in encrypted.items():
        cred = existing.get(ctype)
        if cred is None:
            cred = TenantCredential(tenant_id=tenant_id, credential_type=ctype, encrypted_value=ciphertext)
        else:
            cred.encrypted_value = ciphertext
            cred.updated_at = now
        cred.validated_at = now
        session.add(cred)
    return list(encrypted)


async def load_credentials(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    types: Iterable[CredentialType],
) -> dict[CredentialType, str]:
    """Decrypt the requested credentials. Missing ones are simply absent."""
    stmt = select(TenantCredential).where(
        TenantCredential.tenant_id == tenant_id,
        TenantCredential.credential_type.in_(list(types)),  # type: ignore[attr-defined]
    )
    rows = (await session.execute(stmt)).scalars().all()
    return {row.credential_type: decrypt_value(row.encrypted_value) for row in rows}


async def runtime_client_for(session: AsyncSession, tenant_id: uuid.UUID) -> TenantRuntimeClient:
    creds = await load_credentials(
        session, tenant_id, (CredentialType.DATABASE_API_URL, CredentialType.SERVICE_ROLE_KEY),
    )
    api_url = creds.get(CredentialType.DATABASE_API_URL)
    service_key = creds.get(CredentialType.SERVICE_ROLE_KEY)
    if not api_url or not service_key:
        raise ConfigurationError("Missing database API URL or service role key for tenant")
    return TenantRuntimeClient(api_url, service_key)
