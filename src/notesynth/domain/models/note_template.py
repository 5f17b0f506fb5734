from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class VisibilityRule(str, Enum):
    ALWAYS_PROVIDER_ONLY = "ALWAYS_PROVIDER_ONLY"
    ALWAYS_SHARED = "ALWAYS_SHARED"
    CONDITIONAL = "CONDITIONAL"


class TemplateSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    section_type: str
    title: str
    content: str = ""
    # Kept as a plain string so stored rows with a rule value this build does
    # not know about still load; the visibility resolver treats anything
    # unrecognized as provider-only.
    visibility_rule: str = VisibilityRule.ALWAYS_PROVIDER_ONLY.value
    patient_filter_rule: Optional[str] = None
    is_required: bool = False
    order_index: int


class NoteTemplate(BaseModel):
    """One immutable version of a note template.

    ``id`` identifies this exact version and is what processed templates and
    notes pin. ``template_id`` is shared by every version of the same template.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    template_id: UUID
    version: int
    name: str
    category: str
    encounter_type: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    sections: List[TemplateSection]

    def ordered_sections(self) -> List[TemplateSection]:
        return sorted(self.sections, key=lambda s: s.order_index)


class TemplateSummary(BaseModel):
    id: UUID
    template_id: UUID
    version: int
    name: str
    category: str
    encounter_type: Optional[str] = None
    section_count: int


class TemplateDefinition(BaseModel):
    """Input for creating a template version.

    When ``template_id`` names an existing template the result is that
    template's next version; otherwise a new template starts at version 1.
    """

    template_id: Optional[UUID] = None
    name: str
    category: str
    encounter_type: Optional[str] = None
    sections: List[TemplateSection] = Field(default_factory=list)
