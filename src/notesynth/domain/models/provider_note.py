from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.notesynth.domain.models.patient import Medication
from src.notesynth.domain.models.processed_template import ProcessedSection


class NoteStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    SHARED = "shared"


class ProviderNote(BaseModel):
    """A provider-authored clinical note for one consultation.

    Lifecycle is one-way: draft -> finalized -> shared. ``version`` is bumped
    on every write and is what the repositories compare-and-swap on.
    """

    id: UUID
    patient_id: str
    provider_id: str
    consultation_id: UUID
    template_version_id: UUID
    template_id: Optional[UUID] = None
    recommendation_bundle_id: Optional[UUID] = None
    processed_template_id: Optional[UUID] = None

    title: str
    content: str = ""
    # Working copy of the processed sections. Editable while the note is a
    # draft; this is what the patient view is filtered from.
    sections: List[ProcessedSection] = Field(default_factory=list)
    medications: List[Medication] = Field(default_factory=list)
    assessment: str = ""
    plan: str = ""
    follow_up_period: Optional[str] = None

    status: NoteStatus = NoteStatus.DRAFT
    is_shared_with_patient: bool = False
    version: int = 1

    created_at: datetime
    updated_at: datetime
    finalized_at: Optional[datetime] = None
    shared_at: Optional[datetime] = None

    def unresolved_required_sections(self) -> List[ProcessedSection]:
        return [s for s in self.sections if s.is_required and s.unresolved_placeholders]
