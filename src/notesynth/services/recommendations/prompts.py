from __future__ import annotations

from typing import Dict, Optional, Tuple

from src.notesynth.domain.models.recommendation import PromptType, RecommendationSection

DEFAULT_CATEGORY = "default"

_DEFAULT_PROMPTS: Dict[Tuple[str, PromptType, RecommendationSection], str] = {
    (DEFAULT_CATEGORY, PromptType.INITIAL, RecommendationSection.SUMMARY): (
        "Summarize the key findings from the intake form as short bullet items. "
        "Give each item a confidence between 0 and 1."
    ),
    (DEFAULT_CATEGORY, PromptType.INITIAL, RecommendationSection.ASSESSMENT): (
        "Write a brief clinical assessment of the patient based on the intake form."
    ),
    (DEFAULT_CATEGORY, PromptType.INITIAL, RecommendationSection.PLAN): (
        "Propose a treatment plan including follow-up interval. The provider will review it."
    ),
    (DEFAULT_CATEGORY, PromptType.FOLLOW_UP, RecommendationSection.SUMMARY): (
        "Summarize changes since the previous visit as short bullet items, each with a confidence between 0 and 1."
    ),
    (DEFAULT_CATEGORY, PromptType.FOLLOW_UP, RecommendationSection.ASSESSMENT): (
        "Assess progress against the existing treatment plan."
    ),
    (DEFAULT_CATEGORY, PromptType.FOLLOW_UP, RecommendationSection.PLAN): (
        "Recommend whether to continue, adjust, or stop the current plan and when to follow up."
    ),
}


class PromptLibrary:
    """Prompts keyed by (category, prompt type, section).

    Category-specific prompts override the defaults; anything not registered
    for a category falls back to the default category.
    """

    def __init__(self) -> None:
        self._prompts = dict(_DEFAULT_PROMPTS)

    def register(
        self,
        category_id: str,
        prompt_type: PromptType,
        section: RecommendationSection,
        prompt: str,
    ) -> None:
        self._prompts[(category_id, prompt_type, section)] = prompt

    def get(
        self,
        category_id: str,
        prompt_type: PromptType,
        section: RecommendationSection,
    ) -> Optional[str]:
        return self._prompts.get((category_id, prompt_type, section)) or self._prompts.get(
            (DEFAULT_CATEGORY, prompt_type, section)
        )


prompt_library = PromptLibrary()
