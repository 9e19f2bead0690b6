"""Job tracker — persists step-by-step progress of long-running operations.

Every mutation is committed immediately so a crashed or failed operation can
be diagnosed from the job row alone.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from launchpad.models.base import utcnow
from launchpad.models.job import JobRead, JobStatus, JobStep, JobType, ProvisioningJob

logger = logging.getLogger(__name__)


async def create_job(
    session: AsyncSession,
    job_type: JobType,
    tenant_id: uuid.UUID | None,
    step_names: Sequence[str] = (),
) -> ProvisioningJob:
    steps = [JobStep(name=name) for name in step_names]
    job = ProvisioningJob(
        tenant_id=tenant_id,
        job_type=job_type,
        status=JobStatus.RUNNING,
        steps=_dump(steps),
    )
    session.add(job)
    await session.commit()
    await session.refresh(job)
    return job


def _dump(steps: Sequence[JobStep]) -> str:
    return json.dumps([s.model_dump(mode="json") for s in steps])


async def _save_steps(session: AsyncSession, job: ProvisioningJob, steps: list[JobStep]) -> None:
    if job.is_finished:
        raise ValueError(f"Job {job.id} is already {job.status}")
    job.steps = _dump(steps)
    session.add(job)
    await session.commit()


async def start_step(session: AsyncSession, job: ProvisioningJob, index: int) -> None:
    steps = job.step_list
    steps[index].status = JobStatus.RUNNING
    steps[index].started_at = utcnow()
    await _save_steps(session, job, steps)


async def complete_step(
    session: AsyncSession, job: ProvisioningJob, index: int, warning: str | None = None,
) -> None:
    """Mark a step completed. *warning* records a non-fatal problem on it."""
    steps = job.step_list
    steps[index].status = JobStatus.COMPLETED
    steps[index].completed_at = utcnow()
    steps[index].error = warning
    await _save_steps(session, job, steps)


async def fail_step(session: AsyncSession, job: ProvisioningJob, index: int, error: str) -> None:
    steps = job.step_list
    steps[index].status = JobStatus.FAILED
    steps[index].completed_at = utcnow()
    steps[index].error = error
    await _save_steps(session, job, steps)


async def append_step(
    session: AsyncSession,
    job: ProvisioningJob,
    name: str,
    status: JobStatus,
    error: str | None = None,
) -> None:
    now = utcnow()
    steps = job.step_list
    steps.append(JobStep(name=name, status=status, started_at=now, completed_at=now, error=error))
    await _save_steps(session, job, steps)


async def finish_job(session: AsyncSession, job: ProvisioningJob, error: str | None = None) -> None:
    """Mark the job completed, or failed when *error* is given. Final."""
    if job.is_finished:
        raise ValueError(f"Job {job.id} is already {job.status}")
    job.status = JobStatus.FAILED if error else JobStatus.COMPLETED
    job.error = error
    job.completed_at = utcnow()
    session.add(job)
    await session.commit()
    if error:
        logger.warning("Job %s (%s) failed: %s", job.id, job.job_type, error)
    else:
        logger.info("Job %s (%s) completed", job.id, job.job_type)


@dataclass(slots=True)
class StepState:
    warning: str | None = None


@asynccontextmanager
async def tracked_step(
    session: AsyncSession, job: ProvisioningJob, index: int,
) -> AsyncIterator[StepState]:
    """Run one numbered step, recording start, completion or failure on the job.

    The session is rolled back before the failure is recorded, so work done
    inside the block must commit its own writes.
    """
    state = StepState()
    await start_step(session, job, index)
    try:
        yield state
    except Exception as exc:
        await session.rollback()
        await session.refresh(job)
        await fail_step(session, job, index, str(exc) or exc.__class__.__name__)
        raise
    await complete_step(session, job, index, warning=state.warning)


def to_read(job: ProvisioningJob) -> JobRead:
    return JobRead(
        id=job.id,
        tenant_id=job.tenant_id,
        job_type=job.job_type,
        status=job.status,
        steps=job.step_list,
        error=job.error,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )
