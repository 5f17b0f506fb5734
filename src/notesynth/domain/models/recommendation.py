from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PromptType(str, Enum):
    INITIAL = "initial"
    FOLLOW_UP = "follow_up"


class RecommendationSection(str, Enum):
    SUMMARY = "summary"
    ASSESSMENT = "assessment"
    PLAN = "plan"


class SummaryItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(ge=0.0, le=1.0)


class RecommendationBundle(BaseModel):
    """Immutable AI output tied to one intake submission.

    Re-generating recommendations produces a new bundle with a new id; an
    existing bundle is never edited.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    form_id: UUID
    patient_id: str
    consultation_id: UUID
    category_id: str
    prompt_type: PromptType = PromptType.INITIAL
    created_at: datetime
    summary: Tuple[SummaryItem, ...] = ()
    assessment: str = ""
    plan: str = ""
    # Backend that produced the bundle, e.g. "demo" or "llm:gpt-4.1-mini".
    source: str = "demo"
