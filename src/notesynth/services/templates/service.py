from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Set
from uuid import UUID, uuid4

from src.notesynth.domain.models.note_template import (
    NoteTemplate,
    TemplateDefinition,
    TemplateSection,
    TemplateSummary,
    VisibilityRule,
)
from src.notesynth.errors import NotFound, PredicateError, ValidationError
from src.notesynth.services.visibility.predicates import parse_rule

logger = logging.getLogger("notesynth.templates")

_KNOWN_RULES = {rule.value for rule in VisibilityRule}


class InMemoryTemplateStore:
    """Versioned, in-memory store for note templates.

    Every write creates a new immutable version row. Rows are never edited in
    place, so a processed template or note that pins a version id always sees
    the same sections. Reads take no lock.
    """

    def __init__(self, *, seed_defaults: bool = True) -> None:
        self._versions: Dict[UUID, NoteTemplate] = {}
        # template_id -> version ids, oldest first
        self._history: Dict[UUID, List[UUID]] = {}
        self._inactive: Set[UUID] = set()
        self._lock = Lock()
        if seed_defaults:
            self._seed_defaults()

    def _seed_defaults(self) -> None:
        self.create_template_version(
            TemplateDefinition(
                name="General intake consultation",
                category="general",
                encounter_type="initial",
                sections=[
                    TemplateSection(
                        section_type="header",
                        title="Visit",
                        content="[CLINIC_NAME] | [DATE] | Provider: [PROVIDER_NAME]\nPatient: [PATIENT_NAME] (DOB [PATIENT_DOB])",
                        visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                        order_index=0,
                    ),
                    TemplateSection(
                        section_type="summary",
                        title="Intake Summary",
                        content="[SUMMARY]",
                        visibility_rule=VisibilityRule.ALWAYS_PROVIDER_ONLY.value,
                        order_index=1,
                    ),
                    TemplateSection(
                        section_type="medications",
                        title="Current Medications",
                        content="[MEDICATIONS]",
                        visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                        order_index=2,
                    ),
                    TemplateSection(
                        section_type="assessment",
                        title="Assessment",
                        content="Patient assessment: [ASSESSMENT]",
                        visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                        is_required=True,
                        order_index=3,
                    ),
                    TemplateSection(
                        section_type="plan",
                        title="Plan",
                        content="[PLAN]",
                        visibility_rule=VisibilityRule.ALWAYS_PROVIDER_ONLY.value,
                        is_required=True,
                        order_index=4,
                    ),
                ],
            )
        )
        self.create_template_version(
            TemplateDefinition(
                name="Weight management follow-up",
                category="weight_management",
                encounter_type="follow_up",
                sections=[
                    TemplateSection(
                        section_type="subjective",
                        title="Progress Since Last Visit",
                        content="[PATIENT_FIRST_NAME] reports: [PROGRESS_NOTES]",
                        visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                        order_index=0,
                    ),
                    TemplateSection(
                        section_type="assessment",
                        title="Assessment",
                        content="[ASSESSMENT]",
                        visibility_rule=VisibilityRule.ALWAYS_PROVIDER_ONLY.value,
                        is_required=True,
                        order_index=1,
                    ),
                    TemplateSection(
                        section_type="plan",
                        title="Your Plan",
                        content="[PLAN]",
                        visibility_rule=VisibilityRule.ALWAYS_SHARED.value,
                        is_required=True,
                        order_index=2,
                    ),
                    TemplateSection(
                        section_type="program",
                        title="Program Resources",
                        content="As part of the weight management program, log your weight weekly in the app.",
                        visibility_rule=VisibilityRule.CONDITIONAL.value,
                        patient_filter_rule='programs contains "weight_management"',
                        order_index=3,
                    ),
                ],
            )
        )

    # Writes

    def create_template_version(self, definition: TemplateDefinition) -> NoteTemplate:
        _validate_sections(definition.sections)

        with self._lock:
            if definition.template_id is not None and definition.template_id in self._history:
                template_id = definition.template_id
                previous = self._versions[self._history[template_id][-1]]
                version = previous.version + 1
            else:
                template_id = definition.template_id or uuid4()
                version = 1

            tmpl = NoteTemplate(
                id=uuid4(),
                template_id=template_id,
                version=version,
                name=definition.name,
                category=definition.category,
                encounter_type=definition.encounter_type,
                is_active=True,
                created_at=datetime.now(timezone.utc),
                sections=sorted(definition.sections, key=lambda s: s.order_index),
            )
            self._versions[tmpl.id] = tmpl
            self._history.setdefault(template_id, []).append(tmpl.id)
            # A new version re-activates a previously retired template.
            self._inactive.discard(template_id)

        logger.info("Created template %s version %d", template_id, version)
        return tmpl

    def deactivate_template(self, template_id: UUID) -> None:
        with self._lock:
            if template_id not in self._history:
                raise NotFound("Template not found", context={"template_id": str(template_id)})
            self._inactive.add(template_id)
        logger.info("Deactivated template %s", template_id)

    # Reads

    def get_active_templates(
        self,
        *,
        category: Optional[str] = None,
        encounter_type: Optional[str] = None,
    ) -> List[TemplateSummary]:
        results: List[TemplateSummary] = []
        for template_id, version_ids in list(self._history.items()):
            if template_id in self._inactive:
                continue
            tmpl = self._versions[version_ids[-1]]
            if category and tmpl.category != category:
                continue
            if encounter_type and tmpl.encounter_type != encounter_type:
                continue
            results.append(
                TemplateSummary(
                    id=tmpl.id,
                    template_id=tmpl.template_id,
                    version=tmpl.version,
                    name=tmpl.name,
                    category=tmpl.category,
                    encounter_type=tmpl.encounter_type,
                    section_count=len(tmpl.sections),
                )
            )
        return results

    def get_template_version(self, template_id: UUID) -> NoteTemplate:
        """Return the newest version of an active template."""

        version_ids = self._history.get(template_id)
        if not version_ids or template_id in self._inactive:
            raise NotFound("Template not found or inactive", context={"template_id": str(template_id)})
        return self._versions[version_ids[-1]]

    def get_template_by_version_id(self, version_id: UUID) -> NoteTemplate:
        """Return an exact version, superseded or not, for pinned processing."""

        tmpl = self._versions.get(version_id)
        if tmpl is None:
            raise NotFound("Template version not found", context={"version_id": str(version_id)})
        return tmpl

    def is_current(self, template: NoteTemplate) -> bool:
        version_ids = self._history.get(template.template_id)
        if not version_ids or template.template_id in self._inactive:
            return False
        return version_ids[-1] == template.id

    def list_versions(self, template_id: UUID) -> List[NoteTemplate]:
        return [self._versions[v] for v in self._history.get(template_id, [])]


def _validate_sections(sections: List[TemplateSection]) -> None:
    if not sections:
        raise ValidationError("A template needs at least one section")

    seen: Set[int] = set()
    for section in sections:
        if section.order_index in seen:
            raise ValidationError(
                "Duplicate section order_index",
                context={"order_index": section.order_index},
            )
        seen.add(section.order_index)

        if section.visibility_rule not in _KNOWN_RULES:
            raise ValidationError(
                "Unknown visibility_rule",
                context={"visibility_rule": section.visibility_rule, "order_index": section.order_index},
            )

        if section.visibility_rule == VisibilityRule.CONDITIONAL.value:
            if not section.patient_filter_rule:
                raise ValidationError(
                    "CONDITIONAL section requires a patient_filter_rule",
                    context={"section_type": section.section_type, "order_index": section.order_index},
                )
            try:
                parse_rule(section.patient_filter_rule)
            except PredicateError as exc:
                raise ValidationError(
                    f"Invalid patient_filter_rule: {exc.message}",
                    context={"section_type": section.section_type, "order_index": section.order_index},
                ) from exc


template_store = InMemoryTemplateStore()
