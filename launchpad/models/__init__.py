"""Import all models so SQLModel.metadata picks them up."""

from launchpad.models.credential import CredentialType, TenantCredential
from launchpad.models.domain import SslStatus, TenantDomain, TenantDomainRead
from launchpad.models.job import JobRead, JobStatus, JobStep, JobType, ProvisioningJob
from launchpad.models.tenant import Tenant, TenantRead, TenantStatus

__all__ = [
    "CredentialType",
    "JobRead",
    "JobStatus",
    "JobStep",
    "JobType",
    "ProvisioningJob",
    "SslStatus",
    "Tenant",
    "TenantCredential",
    "TenantDomain",
    "TenantDomainRead",
    "TenantRead",
    "TenantStatus",
]
