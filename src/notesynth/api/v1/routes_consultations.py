from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from src.notesynth.domain.models.flow_event import FlowStatus
from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.security import get_api_key
from src.notesynth.services.audit.service import audit_service
from src.notesynth.services.pipeline.service import note_pipeline

router = APIRouter(
    prefix="/consultations",
    tags=["consultations"],
    dependencies=[Depends(get_api_key)],
)


@router.get("/{consultation_id}/patient-view", response_model=PatientView)
async def get_patient_view(consultation_id: UUID) -> PatientView:
    view = note_pipeline.get_patient_view(consultation_id)
    audit_service.log_event(action="get_patient_view", resource_type="patient_view", resource_id=str(view.id))
    return view


@router.get("/{consultation_id}/patient-views", response_model=List[PatientView])
async def list_patient_views(consultation_id: UUID) -> List[PatientView]:
    return note_pipeline.list_patient_views(consultation_id)


@router.get("/{consultation_id}/flow", response_model=FlowStatus)
async def get_flow_status(consultation_id: UUID) -> FlowStatus:
    return note_pipeline.flow_status(consultation_id)
