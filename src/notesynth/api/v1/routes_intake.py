from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.notesynth.domain.models.intake import IntakeReceipt, IntakeSubmission
from src.notesynth.domain.models.recommendation import PromptType, RecommendationBundle
from src.notesynth.security import get_api_key
from src.notesynth.services.audit.service import audit_service
from src.notesynth.services.pipeline.service import note_pipeline

router = APIRouter(tags=["intake"], dependencies=[Depends(get_api_key)])


class RecommendationRequestBody(BaseModel):
    prompt_type: PromptType = PromptType.INITIAL


@router.post("/intake", response_model=IntakeReceipt, status_code=status.HTTP_201_CREATED)
async def submit_intake(payload: IntakeSubmission) -> IntakeReceipt:
    receipt = note_pipeline.submit_intake(payload)
    audit_service.log_event(
        action="submit_intake",
        resource_type="consultation",
        resource_id=str(receipt.consultation_id),
        extra={"category_id": payload.category_id, "field_count": len(payload.form_data)},
    )
    return receipt


@router.post(
    "/consultations/{consultation_id}/recommendations",
    response_model=RecommendationBundle,
    responses={status.HTTP_202_ACCEPTED: {"description": "Generator unavailable; continue without a bundle"}},
)
async def generate_recommendations(
    consultation_id: UUID,
    payload: Optional[RecommendationRequestBody] = None,
):
    prompt_type = payload.prompt_type if payload is not None else PromptType.INITIAL
    bundle = await note_pipeline.generate_recommendations(consultation_id, prompt_type)
    audit_service.log_event(
        action="generate_recommendations",
        resource_type="recommendation_bundle",
        resource_id=str(bundle.id) if bundle is not None else None,
        extra={"consultation_id": str(consultation_id), "available": bundle is not None},
    )
    if bundle is None:
        # Degraded mode is not an error for the flow: AI placeholders are
        # rendered as pending and the provider fills them in.
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"status": "unavailable"})
    return bundle
