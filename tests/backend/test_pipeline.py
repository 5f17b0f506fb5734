import asyncio
from uuid import uuid4

import pytest

from src.notesynth.domain.models.flow_event import FlowEventType
from src.notesynth.domain.models.intake import IntakeSubmission
from src.notesynth.domain.models.note_template import TemplateDefinition, TemplateSection, VisibilityRule
from src.notesynth.domain.models.provider_note import NoteStatus
from src.notesynth.errors import InvalidContext, NotFound, TemplateInactive
from src.notesynth.infra.db.inmemory import (
    InMemoryPatientViewRepository,
    InMemoryProcessedTemplateRepository,
    InMemoryProviderNoteRepository,
)
from src.notesynth.services.events.service import InMemoryFlowEventLog, InMemoryOutbox
from src.notesynth.services.intake.service import InMemoryIntakeService
from src.notesynth.services.notes.service import NoteService
from src.notesynth.services.patients.service import InMemoryPatientDirectory
from src.notesynth.services.pipeline.service import NotePipeline
from src.notesynth.services.recommendations.backends import RecommendationContent
from src.notesynth.services.recommendations.service import RecommendationService
from src.notesynth.services.templates.placeholders import pending_marker
from src.notesynth.services.templates.processor import TemplateProcessor
from src.notesynth.services.templates.service import InMemoryTemplateStore


class FixedBackend:
    name = "fixed"

    async def generate(self, request):
        return RecommendationContent(assessment="stable", plan="increase dosage")


class HangingBackend:
    name = "hanging"

    async def generate(self, request):
        await asyncio.sleep(5)
        return RecommendationContent()


def _pipeline(backend):
    patients = InMemoryPatientDirectory()
    templates = InMemoryTemplateStore(seed_defaults=False)
    events = InMemoryFlowEventLog()
    return NotePipeline(
        intake=InMemoryIntakeService(),
        patients=patients,
        recommendations=RecommendationService(backend=backend, timeout_seconds=0.05),
        templates=templates,
        processor=TemplateProcessor(templates=templates, patients=patients),
        processed=InMemoryProcessedTemplateRepository(),
        notes=NoteService(
            notes=InMemoryProviderNoteRepository(),
            views=InMemoryPatientViewRepository(),
            patients=patients,
            events=events,
            publisher=InMemoryOutbox(),
        ),
        events=events,
    )


def _assessment_plan_template(pipeline, *, required=False):
    return pipeline.templates.create_template_version(
        TemplateDefinition(
            name="Assessment and plan",
            category="general",
            sections=[
                TemplateSection(
                    section_type="assessment",
                    title="Assessment",
                    content="Patient assessment: [ASSESSMENT]",
                    visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                    is_required=required,
                    order_index=0,
                ),
                TemplateSection(
                    section_type="plan",
                    title="Plan",
                    content="[PLAN]",
                    visibility_rule=VisibilityRule.ALWAYS_PROVIDER_ONLY.value,
                    is_required=required,
                    order_index=1,
                ),
            ],
        )
    )


def _intake(pipeline, patient_id="demo-patient-1"):
    return pipeline.submit_intake(
        IntakeSubmission(patient_id=patient_id, category_id="general", provider_id="dr-1", form_data={"symptoms": "fatigue"})
    )


async def test_assessment_shared_and_plan_withheld():
    pipeline = _pipeline(FixedBackend())
    template = _assessment_plan_template(pipeline)
    receipt = _intake(pipeline)

    note = await pipeline.draft_note(receipt.consultation_id, template.template_id)
    pipeline.finalize_note(note.id)
    pipeline.share_note(note.id)

    view = pipeline.get_patient_view(receipt.consultation_id)
    assert len(view.sections) == 1
    assert view.sections[0].content == "Patient assessment: stable"
    assert all(s.section_type != "plan" for s in view.sections)

    flow = pipeline.flow_status(receipt.consultation_id)
    assert flow.current_status is FlowEventType.NOTE_SHARED
    assert [e.event_type for e in flow.history] == [
        FlowEventType.INTAKE_SUBMITTED,
        FlowEventType.AI_GENERATED,
        FlowEventType.TEMPLATE_PROCESSED,
        FlowEventType.NOTE_CREATED,
        FlowEventType.NOTE_FINALIZED,
        FlowEventType.NOTE_SHARED,
    ]
    assert [e.sequence for e in flow.history] == [1, 2, 3, 4, 5, 6]


async def test_generator_timeout_degrades_to_pending_placeholders():
    pipeline = _pipeline(HangingBackend())
    template = _assessment_plan_template(pipeline)
    receipt = _intake(pipeline)

    bundle = await pipeline.generate_recommendations(receipt.consultation_id)
    assert bundle is None

    processed = pipeline.process_template(
        template.template_id, "demo-patient-1", consultation_id=receipt.consultation_id
    )
    assert processed.missing_placeholders == ["ASSESSMENT", "PLAN"]
    assert processed.sections[1].processed_content == pending_marker("PLAN")

    note = pipeline.create_note(
        consultation_id=receipt.consultation_id, title="Visit", processed_template_id=processed.id
    )
    # Neither section is required, so the gaps do not block finalizing.
    finalized = pipeline.finalize_note(note.id)
    assert finalized.status is NoteStatus.FINALIZED

    history = [e.event_type for e in pipeline.flow_status(receipt.consultation_id).history]
    assert FlowEventType.AI_UNAVAILABLE in history


async def test_draft_note_pulls_active_medications():
    pipeline = _pipeline(FixedBackend())
    template = _assessment_plan_template(pipeline, required=True)
    receipt = _intake(pipeline)

    note = await pipeline.draft_note(receipt.consultation_id, template.template_id, title="Initial visit")

    assert note.title == "Initial visit"
    assert [m.name for m in note.medications] == ["Metformin"]
    assert note.recommendation_bundle_id is not None
    assert note.template_version_id == template.id


def test_intake_for_unknown_patient_is_rejected():
    pipeline = _pipeline(FixedBackend())
    with pytest.raises(NotFound):
        _intake(pipeline, patient_id="nobody")


def test_retired_template_raises_template_inactive():
    pipeline = _pipeline(FixedBackend())
    template = _assessment_plan_template(pipeline)
    pipeline.templates.deactivate_template(template.template_id)

    with pytest.raises(TemplateInactive):
        pipeline.process_template(template.template_id, "demo-patient-1")

    # Pinning the exact version still works, e.g. to re-render an old note.
    processed = pipeline.process_template(template.template_id, "demo-patient-1", version_id=template.id)
    assert processed.template_version_id == template.id


def test_process_with_unknown_consultation_or_bundle_is_invalid_context():
    pipeline = _pipeline(FixedBackend())
    template = _assessment_plan_template(pipeline)

    with pytest.raises(InvalidContext):
        pipeline.process_template(template.template_id, "demo-patient-1", consultation_id=uuid4())
    with pytest.raises(InvalidContext):
        pipeline.process_template(template.template_id, "demo-patient-1", recommendation_bundle_id=uuid4())


def test_flow_status_for_unknown_consultation_is_not_found():
    pipeline = _pipeline(FixedBackend())
    with pytest.raises(NotFound):
        pipeline.flow_status(uuid4())
