from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional
from uuid import uuid4

from src.notesynth.domain.models.note_template import VisibilityRule
from src.notesynth.domain.models.patient import PatientRecord
from src.notesynth.domain.models.patient_view import PatientView, PatientViewConfig, PatientViewSection
from src.notesynth.domain.models.processed_template import ProcessedSection, ProcessedTemplate
from src.notesynth.domain.models.provider_note import ProviderNote
from src.notesynth.errors import PredicateError
from src.notesynth.services.visibility.predicates import PredicateEvaluator, SimplePredicateEvaluator

logger = logging.getLogger("notesynth.visibility")

RULES_VERSION = "1"


class VisibilityResolver:
    """Filters processed sections down to what a patient may see.

    Anything that cannot be positively shown is hidden: provider-only
    sections, conditional sections whose rule is false or fails to evaluate,
    and sections carrying a rule value this resolver does not recognize.
    """

    def __init__(self, evaluator: Optional[PredicateEvaluator] = None) -> None:
        self._evaluator: PredicateEvaluator = evaluator or SimplePredicateEvaluator()

    def is_visible(self, section: ProcessedSection, attributes: Mapping[str, Any]) -> bool:
        try:
            rule = VisibilityRule(section.visibility_rule)
        except ValueError:
            logger.warning(
                "Unknown visibility rule %r on section %r; hiding it",
                section.visibility_rule,
                section.section_type,
            )
            return False

        if rule is VisibilityRule.ALWAYS_PROVIDER_ONLY:
            return False
        if rule is VisibilityRule.ALWAYS_SHARED:
            return True
        if rule is VisibilityRule.CONDITIONAL:
            if not section.patient_filter_rule:
                logger.warning("CONDITIONAL section %r has no filter rule; hiding it", section.section_type)
                return False
            try:
                return bool(self._evaluator.evaluate(section.patient_filter_rule, attributes))
            except PredicateError as exc:
                logger.warning(
                    "Filter rule on section %r could not be evaluated (%s); hiding it",
                    section.section_type,
                    exc.message,
                )
                return False
            except Exception:
                logger.warning(
                    "Filter rule on section %r raised in the evaluator; hiding it",
                    section.section_type,
                    exc_info=True,
                )
                return False
        # Exhaustive over VisibilityRule; a new member lands here until handled.
        return False  # pragma: no cover

    def resolve_for_patient(
        self,
        processed_template: ProcessedTemplate,
        patient: PatientRecord,
        *,
        note: Optional[ProviderNote] = None,
        as_of: Optional[date] = None,
    ) -> PatientView:
        """Build a new, immutable patient view.

        Pure apart from id/timestamp generation, so views for different notes
        can be built concurrently.
        """

        now = datetime.now(timezone.utc)
        attributes = patient.attributes(as_of or now.date())

        sections = []
        excluded = 0
        for section in processed_template.sections:
            if not self.is_visible(section, attributes):
                excluded += 1
                continue
            if not section.processed_content.strip():
                excluded += 1
                continue
            sections.append(
                PatientViewSection(
                    section_type=section.section_type,
                    title=section.title,
                    content=section.processed_content,
                )
            )

        return PatientView(
            id=uuid4(),
            note_id=note.id if note is not None else None,
            consultation_id=note.consultation_id if note is not None else processed_template.consultation_id,
            patient_id=patient.id,
            provider_id=note.provider_id if note is not None else None,
            sections=sections,
            config=PatientViewConfig(
                template_version_id=processed_template.template_version_id,
                recommendation_bundle_id=processed_template.recommendation_bundle_id,
                processed_template_id=processed_template.id,
                note_version=note.version if note is not None else None,
                included_section_count=len(sections),
                excluded_section_count=excluded,
                rules_version=RULES_VERSION,
            ),
            created_at=now,
        )


visibility_resolver = VisibilityResolver()
