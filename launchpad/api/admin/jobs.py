"""Job status polling."""

from fastapi import APIRouter

from launchpad.api.deps import Session, parse_uuid
from launchpad.core.errors import NotFoundError
from launchpad.models.job import JobRead, ProvisioningJob
from launchpad.services.jobs import to_read

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=JobRead, summary="Job status with its steps")
async def get_job(job_id: str, session: Session) -> JobRead:
    job = await session.get(ProvisioningJob, parse_uuid(job_id, "job ID"))
    if job is None:
        raise NotFoundError("Job not found")
    return to_read(job)
