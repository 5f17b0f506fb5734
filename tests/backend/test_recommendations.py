import asyncio
from uuid import uuid4

import pydantic
import pytest

from src.notesynth.domain.models.recommendation import PromptType, RecommendationSection, SummaryItem
from src.notesynth.errors import NotFound, RecommendationUnavailable
from src.notesynth.services.recommendations.backends import (
    DemoRecommendationBackend,
    LLMRecommendationBackend,
    RecommendationContent,
    RecommendationRequest,
)
from src.notesynth.services.recommendations.prompts import PromptLibrary
from src.notesynth.services.recommendations.service import RecommendationService


class SlowBackend:
    name = "slow"

    async def generate(self, request):
        await asyncio.sleep(5)
        return RecommendationContent()


class BrokenBackend:
    name = "broken"

    async def generate(self, request):
        raise ValueError("model returned garbage")


def _request(prompt_type=PromptType.INITIAL, **form_data):
    return RecommendationRequest(
        form_id=str(uuid4()),
        patient_id="p-1",
        consultation_id=str(uuid4()),
        category_id="weight_management",
        prompt_type=prompt_type,
        form_data=form_data,
    )


async def test_demo_backend_is_deterministic():
    backend = DemoRecommendationBackend()
    request = _request(weight_kg=95, height_cm=175, conditions=["hypertension"], goals=["lose 10 kg"])

    first = await backend.generate(request)
    second = await backend.generate(request)

    assert first == second
    assert first.summary[0].text == "BMI 31.0"
    assert first.summary[0].confidence == 0.95
    assert first.assessment == "Findings consistent with obesity by BMI, hypertension."
    assert "weight management" in first.plan


async def test_demo_backend_defaults_when_nothing_is_known():
    content = await DemoRecommendationBackend().generate(_request())
    assert content.summary == []
    assert content.assessment == "stable"
    assert content.plan == "No changes recommended; routine follow-up."


async def test_demo_backend_follow_up_continues_plan():
    content = await DemoRecommendationBackend().generate(_request(PromptType.FOLLOW_UP))
    assert content.plan.startswith("Continue current plan")


async def test_service_stores_bundles_append_only():
    service = RecommendationService(backend=DemoRecommendationBackend(), timeout_seconds=1)
    consultation_id = uuid4()

    first = await service.generate(uuid4(), "p-1", consultation_id, "general")
    second = await service.generate(uuid4(), "p-1", consultation_id, "general", PromptType.FOLLOW_UP)

    assert first.id != second.id
    assert first.source == "demo"
    assert service.get_bundle(first.id) == first
    assert service.latest_for_consultation(consultation_id) == second


async def test_timeout_becomes_recommendation_unavailable():
    service = RecommendationService(backend=SlowBackend(), timeout_seconds=0.05)
    with pytest.raises(RecommendationUnavailable) as exc_info:
        await service.generate(uuid4(), "p-1", uuid4(), "general")
    assert exc_info.value.context["backend"] == "slow"


async def test_backend_failure_becomes_recommendation_unavailable():
    service = RecommendationService(backend=BrokenBackend(), timeout_seconds=1)
    with pytest.raises(RecommendationUnavailable):
        await service.generate(uuid4(), "p-1", uuid4(), "general")


def test_unknown_bundle_raises_not_found():
    service = RecommendationService(backend=DemoRecommendationBackend())
    with pytest.raises(NotFound):
        service.get_bundle(uuid4())


def test_llm_prompt_uses_category_prompts_with_default_fallback():
    prompts = PromptLibrary()
    prompts.register("weight_management", PromptType.INITIAL, RecommendationSection.PLAN, "Focus on weight goals.")
    backend = LLMRecommendationBackend(model="test-model", prompts=prompts)

    prompt = backend.build_prompt(_request(weight_kg=80))

    assert backend.name == "llm:test-model"
    assert "plan: Focus on weight goals." in prompt
    assert "summary:" in prompt
    assert '"weight_kg": 80' in prompt


def test_bundle_summary_cannot_be_mutated(bundle_factory):
    bundle = bundle_factory()

    assert isinstance(bundle.summary, tuple)
    with pytest.raises(AttributeError):
        bundle.summary.append(SummaryItem(text="added later", confidence=0.1))
    with pytest.raises(pydantic.ValidationError):
        bundle.summary = ()
