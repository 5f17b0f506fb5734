from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from uuid import UUID, uuid4

from src.notesynth.config import settings
from src.notesynth.domain.models.recommendation import PromptType, RecommendationBundle
from src.notesynth.errors import NotFound, RecommendationUnavailable
from src.notesynth.services.recommendations.backends import (
    RecommendationBackend,
    RecommendationRequest,
    get_recommendation_backend_from_env,
)

logger = logging.getLogger("notesynth.recommendations")


class RecommendationService:
    """Calls the configured generator under a timeout and keeps the bundles.

    Bundles are append-only: generating again for the same consultation adds
    a new bundle and leaves earlier ones untouched.
    """

    def __init__(
        self,
        *,
        backend: Optional[RecommendationBackend] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._backend: RecommendationBackend = backend or get_recommendation_backend_from_env()
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.recommendation_timeout_seconds
        self._bundles: Dict[UUID, RecommendationBundle] = {}

    @property
    def backend_name(self) -> str:
        return self._backend.name

    async def generate(
        self,
        form_id: UUID,
        patient_id: str,
        consultation_id: UUID,
        category_id: str,
        prompt_type: PromptType = PromptType.INITIAL,
        *,
        form_data: Optional[Mapping[str, Any]] = None,
    ) -> RecommendationBundle:
        """Generate and store a new bundle.

        Raises ``RecommendationUnavailable`` on timeout or on any backend
        failure. Callers continue without a bundle in that case.
        """

        request = RecommendationRequest(
            form_id=str(form_id),
            patient_id=patient_id,
            consultation_id=str(consultation_id),
            category_id=category_id,
            prompt_type=prompt_type,
            form_data=dict(form_data or {}),
        )
        context = {"consultation_id": str(consultation_id), "backend": self._backend.name}

        try:
            content = await asyncio.wait_for(self._backend.generate(request), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Recommendation generation timed out after %.1fs for %s", self._timeout, consultation_id)
            raise RecommendationUnavailable("Recommendation generation timed out", context=context) from exc
        except Exception as exc:
            logger.warning(
                "Recommendation generation failed for %s: %s",
                consultation_id,
                type(exc).__name__,
            )
            raise RecommendationUnavailable("Recommendation generation failed", context=context) from exc

        bundle = RecommendationBundle(
            id=uuid4(),
            form_id=form_id,
            patient_id=patient_id,
            consultation_id=consultation_id,
            category_id=category_id,
            prompt_type=prompt_type,
            created_at=datetime.now(timezone.utc),
            summary=content.summary,
            assessment=content.assessment,
            plan=content.plan,
            source=self._backend.name,
        )
        self._bundles[bundle.id] = bundle
        logger.info("Stored recommendation bundle %s for consultation %s", bundle.id, consultation_id)
        return bundle

    def get_bundle(self, bundle_id: UUID) -> RecommendationBundle:
        bundle = self._bundles.get(bundle_id)
        if bundle is None:
            raise NotFound("Recommendation bundle not found", context={"bundle_id": str(bundle_id)})
        return bundle

    def latest_for_consultation(self, consultation_id: UUID) -> Optional[RecommendationBundle]:
        matches = [b for b in self._bundles.values() if b.consultation_id == consultation_id]
        # Insertion order is generation order.
        return matches[-1] if matches else None


recommendation_service = RecommendationService()
