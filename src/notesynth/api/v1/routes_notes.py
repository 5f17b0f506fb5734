from __future__ import annotations

from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.notesynth.domain.models.patient import Medication
from src.notesynth.domain.models.provider_note import ProviderNote
from src.notesynth.security import get_api_key
from src.notesynth.services.audit.service import audit_service
from src.notesynth.services.notes.service import ShareResult, note_service
from src.notesynth.services.pipeline.service import note_pipeline


router = APIRouter(
    prefix="/notes",
    tags=["notes"],
    dependencies=[Depends(get_api_key)],
)


class CreateNoteRequest(BaseModel):
    consultation_id: UUID
    title: str
    provider_id: Optional[str] = None
    processed_template_id: Optional[UUID] = None
    template_version_id: Optional[UUID] = None
    content: Optional[str] = None
    assessment: str = ""
    plan: str = ""
    medications: Optional[List[Medication]] = None
    follow_up_period: Optional[str] = None


class UpdateNoteRequest(BaseModel):
    expected_version: Optional[int] = None
    title: Optional[str] = None
    content: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    medications: Optional[List[Medication]] = None
    follow_up_period: Optional[str] = None
    # Keyed by section order_index.
    sections: Optional[Dict[int, str]] = None


class VersionedRequest(BaseModel):
    expected_version: Optional[int] = None


@router.post("/", response_model=ProviderNote, status_code=status.HTTP_201_CREATED)
async def create_note(payload: CreateNoteRequest) -> ProviderNote:
    note = note_pipeline.create_note(
        consultation_id=payload.consultation_id,
        title=payload.title,
        provider_id=payload.provider_id,
        processed_template_id=payload.processed_template_id,
        template_version_id=payload.template_version_id,
        content=payload.content,
        assessment=payload.assessment,
        plan=payload.plan,
        medications=payload.medications,
        follow_up_period=payload.follow_up_period,
    )
    audit_service.log_event(
        action="create_note",
        resource_type="provider_note",
        resource_id=str(note.id),
        extra={"consultation_id": str(note.consultation_id), "section_count": len(note.sections)},
    )
    return note


@router.get("/{note_id}", response_model=ProviderNote)
async def get_note(note_id: UUID) -> ProviderNote:
    return note_service.get(note_id)


@router.patch("/{note_id}", response_model=ProviderNote)
async def update_note(note_id: UUID, payload: UpdateNoteRequest) -> ProviderNote:
    note = note_service.update_draft(
        note_id,
        title=payload.title,
        content=payload.content,
        assessment=payload.assessment,
        plan=payload.plan,
        medications=payload.medications,
        follow_up_period=payload.follow_up_period,
        section_contents=payload.sections,
        expected_version=payload.expected_version,
    )
    audit_service.log_event(
        action="update_note",
        resource_type="provider_note",
        resource_id=str(note_id),
        extra={"version": note.version},
    )
    return note


@router.post("/{note_id}/finalize", response_model=ProviderNote)
async def finalize_note(note_id: UUID, payload: Optional[VersionedRequest] = None) -> ProviderNote:
    expected_version = payload.expected_version if payload is not None else None
    note = note_pipeline.finalize_note(note_id, expected_version)
    audit_service.log_event(
        action="finalize_note",
        resource_type="provider_note",
        resource_id=str(note_id),
        extra={"version": note.version},
    )
    return note


@router.post("/{note_id}/share", response_model=ShareResult)
async def share_note(note_id: UUID, payload: Optional[VersionedRequest] = None) -> ShareResult:
    expected_version = payload.expected_version if payload is not None else None
    result = note_pipeline.share_note(note_id, expected_version)
    audit_service.log_event(
        action="share_note",
        resource_type="provider_note",
        resource_id=str(note_id),
        extra={
            "patient_view_id": str(result.patient_view.id),
            "included_section_count": result.patient_view.config.included_section_count,
            "excluded_section_count": result.patient_view.config.excluded_section_count,
        },
    )
    return result
