"""Hostnames bound to a tenant."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from launchpad.models.base import CamelModel, enum_column, new_uuid, utcnow


class SslStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


class TenantDomain(SQLModel, table=True):
    __tablename__ = "tenant_domains"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(
        foreign_key="tenants.id", ondelete="CASCADE", nullable=False, index=True,
    )
    # Globally unique across all tenants
    hostname: str = Field(max_length=253, unique=True, nullable=False, index=True)
    is_primary: bool = Field(default=False)
    ssl_status: SslStatus = Field(
        default=SslStatus.PENDING,
        sa_column=enum_column(SslStatus, nullable=False, server_default=SslStatus.PENDING.value),
    )
    verified_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class TenantDomainRead(CamelModel):
    hostname: str
    is_primary: bool
    ssl_status: SslStatus
    verified_at: datetime | None
