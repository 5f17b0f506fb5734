from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PatientViewSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    section_type: str
    title: str
    content: str


class PatientViewConfig(BaseModel):
    """Snapshot of what the view was derived from, kept for audit."""

    model_config = ConfigDict(frozen=True)

    template_version_id: Optional[UUID] = None
    recommendation_bundle_id: Optional[UUID] = None
    processed_template_id: Optional[UUID] = None
    note_version: Optional[int] = None
    included_section_count: int = 0
    excluded_section_count: int = 0
    rules_version: str = "1"


class PatientView(BaseModel):
    """Patient-safe snapshot of a note as of one sharing event.

    Never updated after creation; sharing again creates a new view.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    note_id: Optional[UUID] = None
    consultation_id: Optional[UUID] = None
    patient_id: str
    provider_id: Optional[str] = None
    sections: List[PatientViewSection] = Field(default_factory=list)
    config: PatientViewConfig = Field(default_factory=PatientViewConfig)
    created_at: datetime
