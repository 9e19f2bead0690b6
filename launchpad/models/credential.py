"""Encrypted per-tenant secrets. Ciphertext only, never plaintext."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel

from launchpad.models.base import TimestampMixin, enum_column, new_uuid


class CredentialType(StrEnum):
    DATABASE_URL = "database_url"
    DATABASE_API_URL = "database_api_url"
    ANON_KEY = "anon_key"
    SERVICE_ROLE_KEY = "service_role_key"
    GOOGLE_MAPS = "google_maps"
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    RESEND = "resend"
    SENDGRID = "sendgrid"
    ACCOUNT_TOKEN = "account_token"


class TenantCredential(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_credentials"
    __table_args__ = (UniqueConstraint("tenant_id", "credential_type"),)

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(
        foreign_key="tenants.id", ondelete="CASCADE", nullable=False, index=True,
    )
    credential_type: CredentialType = Field(sa_column=enum_column(CredentialType, length=32, nullable=False))
    encrypted_value: str = Field(sa_column=Column(Text, nullable=False))
    validated_at: datetime | None = Field(default=None)
