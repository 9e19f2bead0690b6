"""Provisioning job — audit and progress record for long-running operations."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from launchpad.models.base import CamelModel, enum_column, load_json, new_uuid, utcnow


class JobType(StrEnum):
    LAUNCH = "launch"
    UPDATE_KEYS = "update_keys"
    ADD_DOMAIN = "add_domain"
    UPGRADE = "upgrade"


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStep(CamelModel):
    name: str
    status: JobStatus = JobStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None


class ProvisioningJob(SQLModel, table=True):
    __tablename__ = "provisioning_jobs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    # NULL for fleet-wide batch records
    tenant_id: uuid.UUID | None = Field(
        default=None, foreign_key="tenants.id", ondelete="CASCADE", nullable=True, index=True,
    )
    job_type: JobType = Field(sa_column=enum_column(JobType, nullable=False))
    status: JobStatus = Field(
        default=JobStatus.PENDING,
        sa_column=enum_column(JobStatus, nullable=False, index=True, server_default=JobStatus.PENDING.value),
    )

    # JSON array of JobStep
    steps: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))
    error: str | None = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    completed_at: datetime | None = Field(default=None)

    @property
    def step_list(self) -> list[JobStep]:
        return [JobStep.model_validate(s) for s in load_json(self.steps, [])]

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobRead(CamelModel):
    id: uuid.UUID
    tenant_id: uuid.UUID | None
    job_type: JobType
    status: JobStatus
    steps: list[JobStep]
    error: str | None
    created_at: datetime
    completed_at: datetime | None
