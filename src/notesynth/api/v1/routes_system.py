from fastapi import APIRouter

from src.notesynth.config import settings
from src.notesynth.infra.db import inmemory as inmemory_repos
from src.notesynth.services.events.service import note_outbox
from src.notesynth.services.recommendations.service import recommendation_service

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/info")
async def system_info_v1() -> dict:
    """Which backends are wired in. No PHI."""

    return {
        "recommendation_backend": recommendation_service.backend_name,
        "recommendation_timeout_seconds": settings.recommendation_timeout_seconds,
        "note_repository": type(inmemory_repos.provider_note_repository).__name__,
        "pending_shared_notes": len(note_outbox.pending()),
    }
