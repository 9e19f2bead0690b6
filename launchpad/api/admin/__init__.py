"""Admin API router aggregation. Every route requires X-Admin-Key."""

from fastapi import APIRouter, Depends

from launchpad.api.admin.domains import router as domains_router
from launchpad.api.admin.features import router as features_router
from launchpad.api.admin.jobs import router as jobs_router
from launchpad.api.admin.system import router as system_router
from launchpad.api.admin.tenants import router as tenants_router
from launchpad.api.admin.upgrade import router as upgrade_router
from launchpad.api.deps import require_admin

admin_router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])
admin_router.include_router(upgrade_router)
admin_router.include_router(features_router)
admin_router.include_router(domains_router)
admin_router.include_router(tenants_router)
admin_router.include_router(jobs_router)
admin_router.include_router(system_router)
