from __future__ import annotations

from threading import Lock
from typing import Dict, List, Optional
from uuid import UUID

from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.domain.models.processed_template import ProcessedTemplate
from src.notesynth.domain.models.provider_note import ProviderNote
from src.notesynth.errors import ConcurrentModification, ValidationError
from src.notesynth.infra.db.repositories import (
    PatientViewRepository,
    ProcessedTemplateRepository,
    ProviderNoteRepository,
)


class InMemoryProviderNoteRepository(ProviderNoteRepository):
    """Dict-backed note store with compare-and-swap updates.

    Notes are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        self._notes: Dict[UUID, ProviderNote] = {}
        self._lock = Lock()

    def get(self, note_id: UUID) -> Optional[ProviderNote]:
        note = self._notes.get(note_id)
        return note.model_copy(deep=True) if note is not None else None

    def list_by_consultation(self, consultation_id: UUID) -> List[ProviderNote]:
        return [
            note.model_copy(deep=True)
            for note in self._notes.values()
            if note.consultation_id == consultation_id
        ]

    def add(self, note: ProviderNote) -> None:
        with self._lock:
            if note.id in self._notes:
                raise ValidationError("Note already exists", context={"note_id": str(note.id)})
            self._notes[note.id] = note.model_copy(deep=True)

    def update(self, note: ProviderNote, *, expected_version: int) -> None:
        with self._lock:
            current = self._notes.get(note.id)
            if current is None or current.version != expected_version:
                raise ConcurrentModification(
                    "Note was modified concurrently",
                    context={
                        "note_id": str(note.id),
                        "expected_version": expected_version,
                        "current_version": current.version if current is not None else None,
                    },
                )
            self._notes[note.id] = note.model_copy(deep=True)


class InMemoryPatientViewRepository(PatientViewRepository):
    def __init__(self) -> None:
        self._views: Dict[UUID, PatientView] = {}
        self._lock = Lock()

    def add(self, view: PatientView) -> None:
        with self._lock:
            if view.id in self._views:
                raise ValidationError("Patient views are immutable", context={"view_id": str(view.id)})
            self._views[view.id] = view

    def get(self, view_id: UUID) -> Optional[PatientView]:
        return self._views.get(view_id)

    def list_by_consultation(self, consultation_id: UUID) -> List[PatientView]:
        # Insertion order is creation order.
        return [v for v in self._views.values() if v.consultation_id == consultation_id]


class InMemoryProcessedTemplateRepository(ProcessedTemplateRepository):
    def __init__(self) -> None:
        self._processed: Dict[UUID, ProcessedTemplate] = {}

    def add(self, processed: ProcessedTemplate) -> None:
        self._processed[processed.id] = processed

    def get(self, processed_id: UUID) -> Optional[ProcessedTemplate]:
        return self._processed.get(processed_id)


provider_note_repository: ProviderNoteRepository = InMemoryProviderNoteRepository()
patient_view_repository: PatientViewRepository = InMemoryPatientViewRepository()
processed_template_repository: ProcessedTemplateRepository = InMemoryProcessedTemplateRepository()
