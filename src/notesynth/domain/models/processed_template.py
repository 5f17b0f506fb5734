from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProcessedSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    section_type: str
    title: str
    original_content: str
    processed_content: str
    visibility_rule: str
    patient_filter_rule: Optional[str] = None
    is_required: bool = False
    order_index: int = 0
    # Placeholder names still unresolved in processed_content.
    unresolved_placeholders: List[str] = Field(default_factory=list)


class ProcessedTemplate(BaseModel):
    """A template version resolved against one patient/recommendation context.

    Created once per note-authoring session. If the session is abandoned
    before a note is created it is simply never referenced again.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    template_version_id: UUID
    # Template family id; None for snapshots of notes created without one.
    template_id: Optional[UUID] = None
    patient_id: str
    consultation_id: Optional[UUID] = None
    recommendation_bundle_id: Optional[UUID] = None
    sections: List[ProcessedSection]
    missing_placeholders: List[str] = Field(default_factory=list)
    created_at: datetime
