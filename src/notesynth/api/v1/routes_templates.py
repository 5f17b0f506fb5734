from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.notesynth.domain.models.note_template import NoteTemplate, TemplateDefinition, TemplateSummary
from src.notesynth.domain.models.processed_template import ProcessedTemplate
from src.notesynth.security import get_api_key
from src.notesynth.services.audit.service import audit_service
from src.notesynth.services.pipeline.service import note_pipeline
from src.notesynth.services.templates.service import template_store


router = APIRouter(
    prefix="/templates",
    tags=["templates"],
    dependencies=[Depends(get_api_key)],
)


class ProcessTemplateRequest(BaseModel):
    patient_id: str
    consultation_id: Optional[UUID] = None
    recommendation_bundle_id: Optional[UUID] = None
    version_id: Optional[UUID] = None
    extra_context: Dict[str, Any] = Field(default_factory=dict)


@router.get("/", response_model=List[TemplateSummary])
async def list_templates(
    category: Optional[str] = None,
    encounter_type: Optional[str] = None,
) -> List[TemplateSummary]:
    return template_store.get_active_templates(category=category, encounter_type=encounter_type)


@router.post("/", response_model=NoteTemplate, status_code=status.HTTP_201_CREATED)
async def create_template(payload: TemplateDefinition) -> NoteTemplate:
    template = template_store.create_template_version(payload)
    audit_service.log_event(
        action="create_template_version",
        resource_type="note_template",
        resource_id=str(template.id),
        extra={"template_id": str(template.template_id), "version": template.version},
    )
    return template


@router.get("/{template_id}", response_model=NoteTemplate)
async def get_template(template_id: UUID) -> NoteTemplate:
    return template_store.get_template_version(template_id)


@router.get("/{template_id}/versions", response_model=List[NoteTemplate])
async def list_template_versions(template_id: UUID) -> List[NoteTemplate]:
    return template_store.list_versions(template_id)


@router.post("/{template_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_template(template_id: UUID) -> None:
    template_store.deactivate_template(template_id)
    audit_service.log_event(action="deactivate_template", resource_type="note_template", resource_id=str(template_id))


@router.post("/{template_id}/process", response_model=ProcessedTemplate, status_code=status.HTTP_201_CREATED)
async def process_template(template_id: UUID, payload: ProcessTemplateRequest) -> ProcessedTemplate:
    processed = note_pipeline.process_template(
        template_id,
        payload.patient_id,
        consultation_id=payload.consultation_id,
        recommendation_bundle_id=payload.recommendation_bundle_id,
        version_id=payload.version_id,
        extra_context=payload.extra_context,
    )
    audit_service.log_event(
        action="process_template",
        resource_type="processed_template",
        resource_id=str(processed.id),
        extra={
            "template_version_id": str(processed.template_version_id),
            "missing_placeholder_count": len(processed.missing_placeholders),
        },
    )
    return processed
