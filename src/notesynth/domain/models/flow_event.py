from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class FlowEventType(str, Enum):
    INTAKE_SUBMITTED = "intake_submitted"
    AI_GENERATED = "ai_generated"
    AI_UNAVAILABLE = "ai_unavailable"
    TEMPLATE_PROCESSED = "template_processed"
    NOTE_CREATED = "note_created"
    NOTE_FINALIZED = "note_finalized"
    NOTE_SHARED = "note_shared"


class FlowEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    consultation_id: UUID
    event_type: FlowEventType
    # Position in the consultation's history, starting at 1.
    sequence: int
    timestamp: datetime
    data: Dict[str, Any] = Field(default_factory=dict)


class FlowStatus(BaseModel):
    consultation_id: UUID
    current_status: Optional[FlowEventType] = None
    history: List[FlowEvent] = Field(default_factory=list)


class NoteSharedEvent(BaseModel):
    """Handed to the messaging collaborator for delivery to the patient."""

    model_config = ConfigDict(frozen=True)

    event_type: str = "note_shared"
    patient_id: str
    consultation_id: UUID
    patient_view_id: UUID
    timestamp: datetime
