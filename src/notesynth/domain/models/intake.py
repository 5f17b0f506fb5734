from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class IntakeSubmission(BaseModel):
    patient_id: str
    category_id: str
    provider_id: str
    form_data: Dict[str, Any] = Field(default_factory=dict)
    provider_name: Optional[str] = None
    clinic_name: Optional[str] = None


class IntakeReceipt(BaseModel):
    form_id: UUID
    consultation_id: UUID


class Consultation(BaseModel):
    """A consultation opened by an intake submission.

    Carries the metadata that [CLINIC_NAME], [PROVIDER_NAME] and [DATE]
    placeholders resolve against.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    form_id: UUID
    patient_id: str
    provider_id: str
    category_id: str
    form_data: Dict[str, Any] = Field(default_factory=dict)
    provider_name: Optional[str] = None
    clinic_name: Optional[str] = None
    consultation_date: date
    created_at: datetime
