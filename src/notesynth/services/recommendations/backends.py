from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from src.notesynth.config import settings
from src.notesynth.domain.models.recommendation import PromptType, RecommendationSection, SummaryItem
from src.notesynth.services.recommendations.prompts import PromptLibrary, prompt_library

logger = logging.getLogger("notesynth.recommendations")


@dataclass(frozen=True)
class RecommendationRequest:
    form_id: str
    patient_id: str
    consultation_id: str
    category_id: str
    prompt_type: PromptType
    form_data: Dict[str, Any] = field(default_factory=dict)


class RecommendationContent(BaseModel):
    summary: List[SummaryItem] = Field(default_factory=list)
    assessment: str = ""
    plan: str = ""


class RecommendationBackend(Protocol):
    """Protocol for AI recommendation generators.

    Implementations may be slow or unreliable; the calling service applies
    the timeout and turns any failure into ``RecommendationUnavailable``.
    """

    name: str

    async def generate(self, request: RecommendationRequest) -> RecommendationContent:  # pragma: no cover - interface
        raise NotImplementedError


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class DemoRecommendationBackend:
    """Deterministic, rule-based generator used for tests and local runs.

    Looks at a handful of well-known intake fields so higher layers get
    stable output without any external service.
    """

    name = "demo"

    async def generate(self, request: RecommendationRequest) -> RecommendationContent:
        data = request.form_data
        summary: List[SummaryItem] = []
        findings: List[str] = []
        actions: List[str] = []

        weight = _as_float(data.get("weight_kg"))
        height = _as_float(data.get("height_cm"))
        if weight and height:
            bmi = round(weight / ((height / 100) ** 2), 1)
            summary.append(SummaryItem(text=f"BMI {bmi}", confidence=0.95))
            if bmi >= 30:
                findings.append("obesity by BMI")
                actions.append("Enroll in structured weight management with monthly check-ins.")
            elif bmi >= 25:
                findings.append("overweight by BMI")
                actions.append("Lifestyle counseling on diet and activity.")

        for condition in data.get("conditions") or []:
            summary.append(SummaryItem(text=f"Reported condition: {condition}", confidence=0.8))
            findings.append(str(condition))

        for goal in data.get("goals") or []:
            summary.append(SummaryItem(text=f"Patient goal: {goal}", confidence=0.6))

        if data.get("symptoms"):
            summary.append(SummaryItem(text=f"Symptoms: {data['symptoms']}", confidence=0.5))

        if findings:
            assessment = "Findings consistent with " + ", ".join(findings) + "."
        else:
            assessment = "stable"

        if request.prompt_type is PromptType.FOLLOW_UP:
            actions.append("Continue current plan; reassess at next follow-up.")
        if not actions:
            actions.append("No changes recommended; routine follow-up.")
        plan = " ".join(actions)

        return RecommendationContent(summary=summary, assessment=assessment, plan=plan)


class LLMRecommendationBackend:
    """Generator that asks an LLM via the OpenAI Python client.

    Expects OPENAI_API_KEY to be set and uses the model name from LLM_MODEL.
    The model is asked for compact JSON with ``summary``, ``assessment`` and
    ``plan`` keys; prompts come from the :class:`PromptLibrary`.
    """

    def __init__(self, model: str | None = None, prompts: PromptLibrary | None = None) -> None:
        self._model = model or settings.llm_model
        self._prompts = prompts or prompt_library
        self.name = f"llm:{self._model}"

    def build_prompt(self, request: RecommendationRequest) -> str:
        parts = []
        for section in RecommendationSection:
            prompt = self._prompts.get(request.category_id, request.prompt_type, section)
            if prompt:
                parts.append(f"{section.value}: {prompt}")
        return (
            "You are a clinical documentation assistant. A provider will review "
            "everything you write.\n"
            + "\n".join(parts)
            + "\nRespond ONLY as compact JSON with keys 'summary' (list of objects "
            "with 'text' and 'confidence'), 'assessment' and 'plan'. Do not include "
            "markdown or explanations.\n\n"
            f"Intake form:\n{json.dumps(request.form_data, indent=2, sort_keys=True, default=str)}\n"
        )

    async def generate(self, request: RecommendationRequest) -> RecommendationContent:  # pragma: no cover - external service
        api_key = settings.openai_api_key
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY must be set to use LLMRecommendationBackend")

        try:
            from openai import AsyncOpenAI
        except ImportError as exc:
            raise RuntimeError(
                "LLMRecommendationBackend requires the 'openai' package. Install it with 'pip install openai'"
            ) from exc

        client = AsyncOpenAI(api_key=api_key)
        response = await client.responses.create(
            model=self._model,
            input=[{"role": "user", "content": self.build_prompt(request)}],
        )

        raw_text = response.output_text
        if not raw_text:
            raise RuntimeError("LLM returned an empty response")

        data = json.loads(raw_text)
        return RecommendationContent.model_validate(
            {
                "summary": data.get("summary") or [],
                "assessment": data.get("assessment") or "",
                "plan": data.get("plan") or "",
            }
        )


def get_recommendation_backend_from_env() -> RecommendationBackend:
    """Select a recommendation backend based on RECOMMENDATION_BACKEND.

    Supports:
    - "demo" (default) – deterministic rule-based generator
    - "llm" – LLMRecommendationBackend using an external LLM
    """

    backend_name = settings.recommendation_backend.lower()
    if backend_name == "llm":
        return LLMRecommendationBackend()
    return DemoRecommendationBackend()
