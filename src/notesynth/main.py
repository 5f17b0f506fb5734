import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.notesynth.api.errors import register_error_handlers
from src.notesynth.api.v1.routes_consultations import router as consultations_router_v1
from src.notesynth.api.v1.routes_intake import router as intake_router_v1
from src.notesynth.api.v1.routes_notes import router as notes_router_v1
from src.notesynth.api.v1.routes_system import router as system_router_v1
from src.notesynth.api.v1.routes_templates import router as templates_router_v1
from src.notesynth.config import settings
from src.notesynth.infra.db.bootstrap import init_sql_repositories

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Clinical Note Synthesis API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, notes and
    patient views are persisted through SQLAlchemy. Otherwise the in-memory
    repositories stay active.
    """

    init_sql_repositories()


# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(intake_router_v1, prefix="/api/v1")
app.include_router(templates_router_v1, prefix="/api/v1")
app.include_router(notes_router_v1, prefix="/api/v1")
app.include_router(consultations_router_v1, prefix="/api/v1")
