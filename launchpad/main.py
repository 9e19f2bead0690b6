"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from launchpad.api.admin import admin_router
from launchpad.core.config import get_settings
from launchpad.core.database import init_db
from launchpad.core.errors import LaunchpadError, PartialFailure
from launchpad.services.migration_catalog import MigrationCatalog

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Startup: ensure tables exist (use Alembic in production)
    await init_db()
    # Resolved once; every request and batch sees this same snapshot
    app.state.catalog = MigrationCatalog.resolve(settings.template_migration_dirs)
    logger.info(
        "Template catalog: %d migrations, latest %s",
        len(app.state.catalog), app.state.catalog.latest_version(),
    )
    yield


app = FastAPI(
    title="Tenant Launchpad",
    version="0.1.0",
    description="Control plane for provisioning and upgrading tenant sites",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ───────────────────────────────────────────────────
@app.exception_handler(LaunchpadError)
async def launchpad_error_handler(_request: Request, exc: LaunchpadError) -> JSONResponse:
    content: dict = {"detail": exc.message, "error": exc.__class__.__name__}
    if isinstance(exc, PartialFailure):
        content["results"] = exc.results
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.__class__.__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


# ── API routes ───────────────────────────────────────────────
app.include_router(admin_router)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    return {"status": "ok"}
