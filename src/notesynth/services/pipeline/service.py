from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional
from uuid import UUID

from src.notesynth.domain.models.flow_event import FlowEventType, FlowStatus
from src.notesynth.domain.models.intake import IntakeReceipt, IntakeSubmission
from src.notesynth.domain.models.note_template import NoteTemplate
from src.notesynth.domain.models.patient import Medication
from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.domain.models.processed_template import ProcessedTemplate
from src.notesynth.domain.models.provider_note import ProviderNote
from src.notesynth.domain.models.recommendation import PromptType, RecommendationBundle
from src.notesynth.errors import InvalidContext, NotFound, RecommendationUnavailable
from src.notesynth.infra.db import inmemory as inmemory_repos
from src.notesynth.infra.db.repositories import ProcessedTemplateRepository
from src.notesynth.services.events.service import InMemoryFlowEventLog, flow_event_log
from src.notesynth.services.intake.service import InMemoryIntakeService, intake_service
from src.notesynth.services.notes.service import NoteService, ShareResult, note_service
from src.notesynth.services.patients.service import InMemoryPatientDirectory, patient_directory
from src.notesynth.services.recommendations.service import RecommendationService, recommendation_service
from src.notesynth.services.templates.processor import TemplateProcessor, template_processor
from src.notesynth.services.templates.service import InMemoryTemplateStore, template_store

logger = logging.getLogger("notesynth.pipeline")


class NotePipeline:
    """Drives a consultation from intake to a shared patient view.

    Thin orchestration over the component services; records one flow event
    per stage so the consultation's progress can be reported back.
    """

    def __init__(
        self,
        *,
        intake: Optional[InMemoryIntakeService] = None,
        patients: Optional[InMemoryPatientDirectory] = None,
        recommendations: Optional[RecommendationService] = None,
        templates: Optional[InMemoryTemplateStore] = None,
        processor: Optional[TemplateProcessor] = None,
        processed: Optional[ProcessedTemplateRepository] = None,
        notes: Optional[NoteService] = None,
        events: Optional[InMemoryFlowEventLog] = None,
    ) -> None:
        self.intake = intake or intake_service
        self.patients = patients or patient_directory
        self.recommendations = recommendations or recommendation_service
        self.templates = templates or template_store
        self.processor = processor or template_processor
        self.processed = processed or inmemory_repos.processed_template_repository
        self.notes = notes or note_service
        self.events = events or flow_event_log

    def submit_intake(self, submission: IntakeSubmission) -> IntakeReceipt:
        self.patients.require(submission.patient_id)
        receipt = self.intake.submit(submission)
        self.events.append(
            receipt.consultation_id,
            FlowEventType.INTAKE_SUBMITTED,
            {"form_id": str(receipt.form_id), "category_id": submission.category_id},
        )
        return receipt

    async def generate_recommendations(
        self,
        consultation_id: UUID,
        prompt_type: PromptType = PromptType.INITIAL,
    ) -> Optional[RecommendationBundle]:
        """Generate a bundle for the consultation, or None in degraded mode."""

        consultation = self.intake.require_consultation(consultation_id)
        try:
            bundle = await self.recommendations.generate(
                consultation.form_id,
                consultation.patient_id,
                consultation.id,
                consultation.category_id,
                prompt_type,
                form_data=consultation.form_data,
            )
        except RecommendationUnavailable as exc:
            self.events.append(consultation_id, FlowEventType.AI_UNAVAILABLE, {"reason": exc.message})
            logger.warning("Continuing consultation %s without recommendations", consultation_id)
            return None

        self.events.append(
            consultation_id,
            FlowEventType.AI_GENERATED,
            {"bundle_id": str(bundle.id), "source": bundle.source},
        )
        return bundle

    def process_template(
        self,
        template_id: UUID,
        patient_id: str,
        *,
        consultation_id: Optional[UUID] = None,
        recommendation_bundle_id: Optional[UUID] = None,
        version_id: Optional[UUID] = None,
        extra_context: Optional[Mapping[str, Any]] = None,
    ) -> ProcessedTemplate:
        """Resolve a template for a patient and keep the result.

        Passing ``version_id`` pins that exact version. Otherwise the newest
        version is used, and a retired template raises ``TemplateInactive``.
        When a consultation is given without a bundle id, its latest bundle
        (if any) is used.
        """

        template, pinned = self._select_template(template_id, version_id)

        consultation = None
        if consultation_id is not None:
            consultation = self.intake.get_consultation(consultation_id)
            if consultation is None:
                raise InvalidContext("Consultation not found", context={"consultation_id": str(consultation_id)})

        bundle = None
        if recommendation_bundle_id is not None:
            try:
                bundle = self.recommendations.get_bundle(recommendation_bundle_id)
            except NotFound as exc:
                raise InvalidContext(exc.message, context=exc.context) from exc
        elif consultation is not None:
            bundle = self.recommendations.latest_for_consultation(consultation.id)

        processed = self.processor.process(
            template,
            patient_id,
            bundle,
            extra_context,
            consultation=consultation,
            pinned=pinned,
        )
        self.processed.add(processed)
        if consultation is not None:
            self.events.append(
                consultation.id,
                FlowEventType.TEMPLATE_PROCESSED,
                {
                    "processed_template_id": str(processed.id),
                    "template_version_id": str(template.id),
                    "missing_placeholders": processed.missing_placeholders,
                },
            )
        return processed

    def get_processed_template(self, processed_id: UUID) -> ProcessedTemplate:
        processed = self.processed.get(processed_id)
        if processed is None:
            raise NotFound("Processed template not found", context={"processed_template_id": str(processed_id)})
        return processed

    def create_note(
        self,
        *,
        consultation_id: UUID,
        title: str,
        provider_id: Optional[str] = None,
        processed_template_id: Optional[UUID] = None,
        template_version_id: Optional[UUID] = None,
        content: Optional[str] = None,
        assessment: str = "",
        plan: str = "",
        medications: Optional[List[Medication]] = None,
        follow_up_period: Optional[str] = None,
    ) -> ProviderNote:
        consultation = self.intake.require_consultation(consultation_id)
        processed = self.get_processed_template(processed_template_id) if processed_template_id else None
        if medications is None and processed is not None:
            medications = self.patients.require(consultation.patient_id).active_medications()

        return self.notes.create_draft(
            patient_id=consultation.patient_id,
            provider_id=provider_id or consultation.provider_id,
            consultation_id=consultation.id,
            title=title,
            template_version_id=template_version_id,
            processed_template=processed,
            content=content,
            assessment=assessment,
            plan=plan,
            medications=medications,
            follow_up_period=follow_up_period,
        )

    async def draft_note(
        self,
        consultation_id: UUID,
        template_id: UUID,
        *,
        title: Optional[str] = None,
        prompt_type: PromptType = PromptType.INITIAL,
        extra_context: Optional[Mapping[str, Any]] = None,
    ) -> ProviderNote:
        """Recommendations, template processing and a draft note in one go.

        A failed or slow generator does not stop the draft: AI placeholders
        are left pending for the provider.
        """

        consultation = self.intake.require_consultation(consultation_id)
        bundle = await self.generate_recommendations(consultation_id, prompt_type)
        processed = self.process_template(
            template_id,
            consultation.patient_id,
            consultation_id=consultation_id,
            recommendation_bundle_id=bundle.id if bundle is not None else None,
            extra_context=extra_context,
        )
        template = self.templates.get_template_by_version_id(processed.template_version_id)
        return self.create_note(
            consultation_id=consultation_id,
            title=title or template.name,
            processed_template_id=processed.id,
        )

    def finalize_note(self, note_id: UUID, expected_version: Optional[int] = None) -> ProviderNote:
        return self.notes.finalize(note_id, expected_version)

    def share_note(self, note_id: UUID, expected_version: Optional[int] = None) -> ShareResult:
        return self.notes.share(note_id, expected_version=expected_version)

    def get_patient_view(self, consultation_id: UUID) -> PatientView:
        return self.notes.latest_patient_view(consultation_id)

    def list_patient_views(self, consultation_id: UUID) -> List[PatientView]:
        return self.notes.list_patient_views(consultation_id)

    def flow_status(self, consultation_id: UUID) -> FlowStatus:
        self.intake.require_consultation(consultation_id)
        return self.events.status(consultation_id)

    def _select_template(self, template_id: UUID, version_id: Optional[UUID]) -> tuple[NoteTemplate, bool]:
        if version_id is not None:
            template = self.templates.get_template_by_version_id(version_id)
            if template.template_id != template_id:
                raise NotFound(
                    "Template version does not belong to this template",
                    context={"template_id": str(template_id), "version_id": str(version_id)},
                )
            return template, True

        try:
            return self.templates.get_template_version(template_id), False
        except NotFound:
            versions = self.templates.list_versions(template_id)
            if not versions:
                raise
            # Retired family: hand the newest version to the processor,
            # which rejects it as no longer current.
            return versions[-1], False


note_pipeline = NotePipeline()
