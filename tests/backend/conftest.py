from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.notesynth.domain.models.recommendation import RecommendationBundle, SummaryItem


def make_bundle(patient_id="p-1", **overrides):
    data = dict(
        id=uuid4(),
        form_id=uuid4(),
        patient_id=patient_id,
        consultation_id=uuid4(),
        category_id="general",
        created_at=datetime(2024, 6, 14, tzinfo=timezone.utc),
        summary=[SummaryItem(text="BMI 31.2", confidence=0.95), SummaryItem(text="Wants to run", confidence=0.4)],
        assessment="stable",
        plan="increase dosage",
    )
    data.update(overrides)
    return RecommendationBundle(**data)


@pytest.fixture
def bundle_factory():
    return make_bundle
