import pytest

from src.notesynth.domain.models.note_template import TemplateDefinition, TemplateSection, VisibilityRule
from src.notesynth.errors import InvalidContext, TemplateInactive
from src.notesynth.services.intake.service import InMemoryIntakeService
from src.notesynth.domain.models.intake import IntakeSubmission
from src.notesynth.services.patients.service import InMemoryPatientDirectory
from src.notesynth.services.templates.placeholders import pending_marker
from src.notesynth.services.templates.processor import TemplateProcessor
from src.notesynth.services.templates.service import InMemoryTemplateStore


def _setup():
    templates = InMemoryTemplateStore(seed_defaults=False)
    patients = InMemoryPatientDirectory()
    processor = TemplateProcessor(templates=templates, patients=patients, default_clinic_name="Test Clinic")
    template = templates.create_template_version(
        TemplateDefinition(
            name="Scenario",
            category="general",
            sections=[
                TemplateSection(
                    section_type="plan",
                    title="Plan",
                    content="[PLAN]",
                    visibility_rule=VisibilityRule.ALWAYS_PROVIDER_ONLY.value,
                    is_required=True,
                    order_index=2,
                ),
                TemplateSection(
                    section_type="assessment",
                    title="Assessment",
                    content="Patient assessment: [ASSESSMENT]",
                    visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                    order_index=1,
                ),
                TemplateSection(
                    section_type="notes",
                    title="Notes",
                    content="[CLINIC_NAME]: [PROGRESS_NOTES]",
                    visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                    order_index=3,
                ),
            ],
        )
    )
    return templates, processor, template


def test_process_resolves_sections_in_order(bundle_factory):
    _, processor, template = _setup()
    bundle = bundle_factory(patient_id="demo-patient-1")

    processed = processor.process(template, "demo-patient-1", bundle)

    assert [s.section_type for s in processed.sections] == ["assessment", "plan", "notes"]
    assert processed.sections[0].processed_content == "Patient assessment: stable"
    assert processed.sections[0].original_content == "Patient assessment: [ASSESSMENT]"
    assert processed.sections[1].processed_content == "increase dosage"
    assert processed.sections[2].processed_content == "Test Clinic: [PROGRESS_NOTES]"
    assert processed.sections[2].unresolved_placeholders == ["PROGRESS_NOTES"]
    assert processed.missing_placeholders == ["PROGRESS_NOTES"]
    assert processed.template_version_id == template.id
    assert processed.recommendation_bundle_id == bundle.id


def test_process_without_bundle_reports_ai_placeholders():
    _, processor, template = _setup()
    processed = processor.process(template, "demo-patient-1")

    assert processed.missing_placeholders == ["ASSESSMENT", "PLAN", "PROGRESS_NOTES"]
    assert processed.sections[1].processed_content == pending_marker("PLAN")


def test_process_is_idempotent_for_the_same_inputs(bundle_factory):
    _, processor, template = _setup()
    bundle = bundle_factory(patient_id="demo-patient-1")
    first = processor.process(template, "demo-patient-1", bundle, {"progress_notes": "better"})
    second = processor.process(template, "demo-patient-1", bundle, {"progress_notes": "better"})

    assert first.id != second.id
    assert first.sections == second.sections
    assert first.missing_placeholders == second.missing_placeholders == []


def test_superseded_version_requires_pinning():
    templates, processor, template = _setup()
    templates.create_template_version(
        TemplateDefinition(
            template_id=template.template_id,
            name="Scenario v2",
            category="general",
            sections=[TemplateSection(section_type="plan", title="Plan", content="[PLAN]", order_index=0)],
        )
    )

    with pytest.raises(TemplateInactive):
        processor.process(template, "demo-patient-1")

    pinned = processor.process(template, "demo-patient-1", pinned=True)
    assert pinned.template_version_id == template.id


def test_unknown_patient_is_invalid_context():
    _, processor, template = _setup()
    with pytest.raises(InvalidContext):
        processor.process(template, "nobody")


def test_bundle_for_another_patient_is_invalid_context(bundle_factory):
    _, processor, template = _setup()
    with pytest.raises(InvalidContext):
        processor.process(template, "demo-patient-1", bundle_factory(patient_id="demo-patient-2"))


def test_consultation_metadata_feeds_placeholders():
    templates = InMemoryTemplateStore(seed_defaults=False)
    processor = TemplateProcessor(templates=templates, patients=InMemoryPatientDirectory(), default_clinic_name="X")
    template = templates.create_template_version(
        TemplateDefinition(
            name="Header",
            category="general",
            sections=[
                TemplateSection(
                    section_type="header",
                    title="Visit",
                    content="[CLINIC_NAME] [PROVIDER_NAME] [PATIENT_FIRST_NAME]",
                    order_index=0,
                )
            ],
        )
    )
    intake = InMemoryIntakeService()
    receipt = intake.submit(
        IntakeSubmission(
            patient_id="demo-patient-2",
            category_id="general",
            provider_id="dr-9",
            provider_name="Dr. Nine",
            clinic_name="Northside",
        )
    )
    consultation = intake.require_consultation(receipt.consultation_id)

    processed = processor.process(template, "demo-patient-2", consultation=consultation)
    assert processed.sections[0].processed_content == "Northside Dr. Nine Sam"
    assert processed.consultation_id == consultation.id

    with pytest.raises(InvalidContext):
        processor.process(template, "demo-patient-1", consultation=consultation)
