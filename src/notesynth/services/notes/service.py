from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from pydantic import BaseModel

from src.notesynth.domain.models.flow_event import FlowEventType, NoteSharedEvent
from src.notesynth.domain.models.patient import Medication, PatientRecord
from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.domain.models.processed_template import ProcessedSection, ProcessedTemplate
from src.notesynth.domain.models.provider_note import NoteStatus, ProviderNote
from src.notesynth.errors import ConcurrentModification, InvalidContext, InvalidState, NotFound, ValidationError
from src.notesynth.infra.db import inmemory as inmemory_repos
from src.notesynth.infra.db.repositories import PatientViewRepository, ProviderNoteRepository
from src.notesynth.services.events.service import (
    InMemoryFlowEventLog,
    NotePublisher,
    flow_event_log,
    note_outbox,
)
from src.notesynth.services.patients.service import InMemoryPatientDirectory, patient_directory
from src.notesynth.services.templates.placeholders import still_unresolved
from src.notesynth.services.visibility.resolver import VisibilityResolver, visibility_resolver

logger = logging.getLogger("notesynth.notes")


class ShareResult(BaseModel):
    note: ProviderNote
    patient_view: PatientView
    event: NoteSharedEvent


def render_sections(sections: Sequence[ProcessedSection]) -> str:
    """Flatten sections into the note's plain-text body."""

    blocks = []
    for section in sorted(sections, key=lambda s: s.order_index):
        if not section.processed_content.strip():
            continue
        blocks.append(f"{section.title}\n{section.processed_content}")
    return "\n\n".join(blocks)


def _has_body(note: ProviderNote) -> bool:
    return any(part.strip() for part in (note.content, note.assessment, note.plan))


class NoteService:
    """Owns the provider note lifecycle: draft -> finalized -> shared.

    All writes go through ``ProviderNoteRepository.update`` with the version
    that was read, so two writers racing on the same note cannot both win.
    """

    def __init__(
        self,
        *,
        notes: Optional[ProviderNoteRepository] = None,
        views: Optional[PatientViewRepository] = None,
        patients: Optional[InMemoryPatientDirectory] = None,
        resolver: Optional[VisibilityResolver] = None,
        events: Optional[InMemoryFlowEventLog] = None,
        publisher: Optional[NotePublisher] = None,
    ) -> None:
        self._notes = notes or inmemory_repos.provider_note_repository
        self._views = views or inmemory_repos.patient_view_repository
        self._patients = patients or patient_directory
        self._resolver = resolver or visibility_resolver
        self._events = events or flow_event_log
        self._publisher = publisher or note_outbox

    def bind_repositories(self, *, notes: ProviderNoteRepository, views: PatientViewRepository) -> None:
        self._notes = notes
        self._views = views

    # -- reads ---------------------------------------------------------------

    def get(self, note_id: UUID) -> ProviderNote:
        note = self._notes.get(note_id)
        if note is None:
            raise NotFound("Note not found", context={"note_id": str(note_id)})
        return note

    def list_for_consultation(self, consultation_id: UUID) -> List[ProviderNote]:
        return self._notes.list_by_consultation(consultation_id)

    def list_patient_views(self, consultation_id: UUID) -> List[PatientView]:
        return self._views.list_by_consultation(consultation_id)

    def latest_patient_view(self, consultation_id: UUID) -> PatientView:
        views = self._views.list_by_consultation(consultation_id)
        if not views:
            raise NotFound(
                "No patient view has been shared for this consultation",
                context={"consultation_id": str(consultation_id)},
            )
        return views[-1]

    # -- writes --------------------------------------------------------------

    def create_draft(
        self,
        *,
        patient_id: str,
        provider_id: str,
        consultation_id: UUID,
        title: str,
        template_version_id: Optional[UUID] = None,
        processed_template: Optional[ProcessedTemplate] = None,
        recommendation_bundle_id: Optional[UUID] = None,
        content: Optional[str] = None,
        assessment: str = "",
        plan: str = "",
        medications: Optional[List[Medication]] = None,
        follow_up_period: Optional[str] = None,
    ) -> ProviderNote:
        """Create a draft note, optionally seeded from a processed template.

        When ``content`` is omitted it is rendered from the processed
        sections. The template/bundle references are taken from the processed
        template when one is given.
        """

        sections: List[ProcessedSection] = []
        processed_template_id: Optional[UUID] = None
        template_id: Optional[UUID] = None
        if processed_template is not None:
            if processed_template.patient_id != patient_id:
                raise InvalidContext(
                    "Processed template belongs to a different patient",
                    context={"processed_template_id": str(processed_template.id)},
                )
            if processed_template.consultation_id not in (None, consultation_id):
                raise InvalidContext(
                    "Processed template belongs to a different consultation",
                    context={"processed_template_id": str(processed_template.id)},
                )
            sections = list(processed_template.sections)
            processed_template_id = processed_template.id
            template_version_id = processed_template.template_version_id
            template_id = processed_template.template_id
            recommendation_bundle_id = processed_template.recommendation_bundle_id or recommendation_bundle_id

        if template_version_id is None:
            raise ValidationError("template_version_id or processed_template is required")
        if not title.strip():
            raise ValidationError("Note title must not be empty")

        now = datetime.now(timezone.utc)
        note = ProviderNote(
            id=uuid4(),
            patient_id=patient_id,
            provider_id=provider_id,
            consultation_id=consultation_id,
            template_version_id=template_version_id,
            template_id=template_id,
            recommendation_bundle_id=recommendation_bundle_id,
            processed_template_id=processed_template_id,
            title=title,
            content=content if content is not None else render_sections(sections),
            sections=sections,
            medications=list(medications or []),
            assessment=assessment,
            plan=plan,
            follow_up_period=follow_up_period,
            status=NoteStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        if not _has_body(note):
            raise ValidationError("A note needs content, an assessment or a plan")

        self._notes.add(note)
        self._events.append(
            consultation_id,
            FlowEventType.NOTE_CREATED,
            {"note_id": str(note.id), "template_version_id": str(template_version_id)},
        )
        logger.info("Created draft note %s for consultation %s", note.id, consultation_id)
        return note

    def update_draft(
        self,
        note_id: UUID,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        assessment: Optional[str] = None,
        plan: Optional[str] = None,
        medications: Optional[List[Medication]] = None,
        follow_up_period: Optional[str] = None,
        section_contents: Optional[Mapping[int, str]] = None,
        expected_version: Optional[int] = None,
    ) -> ProviderNote:
        """Apply provider edits to a draft.

        ``section_contents`` maps a section's ``order_index`` to its new text.
        Each edited section's unresolved placeholders are recomputed from the
        new text, so filling in a placeholder clears it.
        """

        note = self._load(note_id, expected_version)
        if note.status is not NoteStatus.DRAFT:
            raise InvalidState(
                "Only draft notes can be edited",
                context={"note_id": str(note_id), "status": note.status.value},
            )

        sections = note.sections
        if section_contents:
            by_index = {s.order_index: s for s in sections}
            unknown = sorted(set(section_contents) - set(by_index))
            if unknown:
                raise ValidationError(
                    "Unknown section order_index",
                    context={"note_id": str(note_id), "order_index": unknown},
                )
            sections = []
            for section in note.sections:
                if section.order_index not in section_contents:
                    sections.append(section)
                    continue
                text = section_contents[section.order_index]
                sections.append(
                    section.model_copy(
                        update={
                            "processed_content": text,
                            "unresolved_placeholders": still_unresolved(text, section.unresolved_placeholders),
                        }
                    )
                )

        changes = {
            "sections": sections,
            "updated_at": datetime.now(timezone.utc),
            "version": note.version + 1,
        }
        for field_name, value in (
            ("title", title),
            ("content", content),
            ("assessment", assessment),
            ("plan", plan),
            ("medications", medications),
            ("follow_up_period", follow_up_period),
        ):
            if value is not None:
                changes[field_name] = value
        if section_contents and content is None:
            changes["content"] = render_sections(sections)

        updated = note.model_copy(update=changes)
        if not _has_body(updated):
            raise ValidationError("A note needs content, an assessment or a plan")

        self._notes.update(updated, expected_version=note.version)
        return updated

    def finalize(self, note_id: UUID, expected_version: Optional[int] = None) -> ProviderNote:
        note = self._load(note_id, expected_version)
        if note.status is not NoteStatus.DRAFT:
            raise InvalidState(
                "Only draft notes can be finalized",
                context={"note_id": str(note_id), "status": note.status.value},
            )

        blocking = note.unresolved_required_sections()
        if blocking:
            raise ValidationError(
                "Required sections still have unresolved placeholders",
                context={
                    "note_id": str(note_id),
                    "sections": [s.section_type for s in blocking],
                    "placeholders": sorted({name for s in blocking for name in s.unresolved_placeholders}),
                },
            )

        now = datetime.now(timezone.utc)
        finalized = note.model_copy(
            update={
                "status": NoteStatus.FINALIZED,
                "finalized_at": now,
                "updated_at": now,
                "version": note.version + 1,
            }
        )
        self._notes.update(finalized, expected_version=note.version)
        self._events.append(note.consultation_id, FlowEventType.NOTE_FINALIZED, {"note_id": str(note_id)})
        logger.info("Finalized note %s (version %d)", note_id, finalized.version)
        return finalized

    def share(
        self,
        note_id: UUID,
        patient: Optional[PatientRecord] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> ShareResult:
        """Share a finalized note with its patient.

        Every call produces a fresh PatientView; views from earlier shares
        are left untouched.
        """

        note = self._load(note_id, expected_version)
        if note.status not in (NoteStatus.FINALIZED, NoteStatus.SHARED):
            raise InvalidState(
                "Note must be finalized before it can be shared",
                context={"note_id": str(note_id), "status": note.status.value},
            )

        if patient is None:
            patient = self._patients.require(note.patient_id)
        elif patient.id != note.patient_id:
            raise InvalidContext(
                "Patient does not match the note",
                context={"note_id": str(note_id), "patient_id": patient.id},
            )

        snapshot = ProcessedTemplate(
            id=note.processed_template_id or note.id,
            template_version_id=note.template_version_id,
            template_id=note.template_id,
            patient_id=note.patient_id,
            consultation_id=note.consultation_id,
            recommendation_bundle_id=note.recommendation_bundle_id,
            sections=note.sections,
            created_at=note.updated_at,
        )
        view = self._resolver.resolve_for_patient(snapshot, patient, note=note)

        now = datetime.now(timezone.utc)
        shared = note.model_copy(
            update={
                "status": NoteStatus.SHARED,
                "is_shared_with_patient": True,
                "shared_at": now,
                "updated_at": now,
                "version": note.version + 1,
            }
        )
        # The note write is the commit point: a losing sharer leaves no view.
        self._notes.update(shared, expected_version=note.version)
        self._views.add(view)

        event = NoteSharedEvent(
            patient_id=note.patient_id,
            consultation_id=note.consultation_id,
            patient_view_id=view.id,
            timestamp=now,
        )
        self._events.append(
            note.consultation_id,
            FlowEventType.NOTE_SHARED,
            {"note_id": str(note_id), "patient_view_id": str(view.id)},
        )
        self._publisher.publish(event)
        logger.info(
            "Shared note %s as view %s (%d section(s) included, %d excluded)",
            note_id,
            view.id,
            view.config.included_section_count,
            view.config.excluded_section_count,
        )
        return ShareResult(note=shared, patient_view=view, event=event)

    def _load(self, note_id: UUID, expected_version: Optional[int]) -> ProviderNote:
        note = self.get(note_id)
        if expected_version is not None and note.version != expected_version:
            raise ConcurrentModification(
                "Note was modified concurrently",
                context={
                    "note_id": str(note_id),
                    "expected_version": expected_version,
                    "current_version": note.version,
                },
            )
        return note


note_service = NoteService()
