"""A customer's isolated site and database."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from launchpad.models.base import CamelModel, TimestampMixin, enum_column, load_json, new_uuid


class TenantStatus(StrEnum):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    slug: str = Field(max_length=63, unique=True, nullable=False, index=True)
    display_name: str = Field(max_length=100, nullable=False)
    status: TenantStatus = Field(
        default=TenantStatus.PROVISIONING,
        sa_column=enum_column(
            TenantStatus, nullable=False, index=True, server_default=TenantStatus.PROVISIONING.value,
        ),
    )

    # 14-digit version of the last migration applied to the tenant database,
    # NULL until provisioning has applied the catalog.
    schema_version: str | None = Field(default=None, max_length=14, index=True)

    # Handle of the tenant's database instance; set only once it is reachable.
    database_ref: str | None = Field(default=None, max_length=64)

    # JSON object of flag name -> bool
    feature_flags: str = Field(default="{}", sa_column=Column(Text, nullable=False, server_default="{}"))

    template: str = Field(default="preconstruction-v1", max_length=100)
    theme_preset: str = Field(default="luxury-blue", max_length=100)
    admin_email: str = Field(max_length=320, nullable=False)
    owner_account_id: str | None = Field(default=None, max_length=64, index=True)

    # Optimistic lock counter, bumped on every orchestrator write
    row_version: int = Field(default=0, nullable=False)

    @property
    def flags(self) -> dict[str, bool]:
        return load_json(self.feature_flags, {})


# ── Pydantic schemas ─────────────────────────────────────────

class TenantRead(CamelModel):
    id: uuid.UUID
    slug: str
    display_name: str
    status: TenantStatus
    schema_version: str | None
    database_ref: str | None
    feature_flags: dict[str, bool]
    template: str
    theme_preset: str
    admin_email: str
    owner_account_id: str | None
    created_at: datetime
    updated_at: datetime
