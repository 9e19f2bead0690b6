"""Subdomain availability check."""

from fastapi import APIRouter

from launchpad.api.deps import Hosting, Session
from launchpad.core.errors import InputValidationError
from launchpad.models.base import CamelModel
from launchpad.services.domains import Availability, check_availability

router = APIRouter(prefix="/domains", tags=["domains"])


class DomainCheckRequest(CamelModel):
    slug: str = ""


@router.post("/check", response_model=Availability, summary="Is this subdomain free?")
async def check_domain(body: DomainCheckRequest, session: Session, hosting: Hosting) -> Availability:
    slug = body.slug.strip().lower()
    if not slug:
        raise InputValidationError("Subdomain is required")
    return await check_availability(session, slug, hosting)
