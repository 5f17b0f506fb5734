from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
from uuid import uuid4

from src.notesynth.config import settings
from src.notesynth.domain.models.intake import Consultation
from src.notesynth.domain.models.note_template import NoteTemplate
from src.notesynth.domain.models.processed_template import ProcessedSection, ProcessedTemplate
from src.notesynth.domain.models.recommendation import RecommendationBundle
from src.notesynth.errors import InvalidContext, TemplateInactive
from src.notesynth.services.patients.service import InMemoryPatientDirectory, patient_directory
from src.notesynth.services.templates.placeholders import build_context, resolve_content
from src.notesynth.services.templates.service import InMemoryTemplateStore, template_store

logger = logging.getLogger("notesynth.processor")


class TemplateProcessor:
    """Resolves a template version against one patient's data.

    Missing placeholders never abort processing: they stay in the text, are
    listed on the result, and are left for the provider to fill in.
    """

    def __init__(
        self,
        *,
        templates: Optional[InMemoryTemplateStore] = None,
        patients: Optional[InMemoryPatientDirectory] = None,
        high_confidence_threshold: Optional[float] = None,
        default_clinic_name: Optional[str] = None,
    ) -> None:
        self._templates = templates or template_store
        self._patients = patients or patient_directory
        self._threshold = (
            high_confidence_threshold if high_confidence_threshold is not None else settings.high_confidence_threshold
        )
        self._clinic_name = default_clinic_name if default_clinic_name is not None else settings.default_clinic_name

    def process(
        self,
        template: NoteTemplate,
        patient_id: str,
        recommendation_bundle: Optional[RecommendationBundle] = None,
        extra_context: Optional[Mapping[str, Any]] = None,
        *,
        consultation: Optional[Consultation] = None,
        pinned: bool = False,
    ) -> ProcessedTemplate:
        """Produce a ProcessedTemplate.

        ``pinned`` means the caller asked for this exact version id; without
        it, a superseded or retired version is rejected with
        ``TemplateInactive`` so the caller re-fetches the latest one.
        """

        if not pinned and not self._templates.is_current(template):
            raise TemplateInactive(
                "Template version is no longer current",
                context={"template_id": str(template.template_id), "version_id": str(template.id)},
            )

        patient = self._patients.get(patient_id)
        if patient is None:
            raise InvalidContext("Patient not found", context={"patient_id": patient_id})
        if recommendation_bundle is not None and recommendation_bundle.patient_id != patient_id:
            raise InvalidContext(
                "Recommendation bundle belongs to a different patient",
                context={"bundle_id": str(recommendation_bundle.id)},
            )
        if consultation is not None and consultation.patient_id != patient_id:
            raise InvalidContext(
                "Consultation belongs to a different patient",
                context={"consultation_id": str(consultation.id)},
            )

        ctx = build_context(
            patient=patient,
            bundle=recommendation_bundle,
            consultation=consultation,
            extra_context=extra_context,
            default_clinic_name=self._clinic_name,
            high_confidence_threshold=self._threshold,
        )

        sections: List[ProcessedSection] = []
        missing: set[str] = set()
        for section in template.ordered_sections():
            processed_content, unresolved = resolve_content(section.content, ctx)
            missing.update(unresolved)
            sections.append(
                ProcessedSection(
                    section_type=section.section_type,
                    title=section.title,
                    original_content=section.content,
                    processed_content=processed_content,
                    visibility_rule=section.visibility_rule,
                    patient_filter_rule=section.patient_filter_rule,
                    is_required=section.is_required,
                    order_index=section.order_index,
                    unresolved_placeholders=unresolved,
                )
            )

        if missing:
            logger.info(
                "Template %s v%d processed for %s with %d missing placeholder(s): %s",
                template.template_id,
                template.version,
                patient_id,
                len(missing),
                ", ".join(sorted(missing)),
            )

        return ProcessedTemplate(
            id=uuid4(),
            template_version_id=template.id,
            template_id=template.template_id,
            patient_id=patient_id,
            consultation_id=consultation.id if consultation is not None else None,
            recommendation_bundle_id=recommendation_bundle.id if recommendation_bundle is not None else None,
            sections=sections,
            missing_placeholders=sorted(missing),
            created_at=datetime.now(timezone.utc),
        )


template_processor = TemplateProcessor()
