from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.domain.models.processed_template import ProcessedTemplate
from src.notesynth.domain.models.provider_note import ProviderNote


class ProviderNoteRepository(ABC):
    @abstractmethod
    def get(self, note_id: UUID) -> Optional[ProviderNote]:
        raise NotImplementedError

    @abstractmethod
    def list_by_consultation(self, consultation_id: UUID) -> List[ProviderNote]:
        raise NotImplementedError

    @abstractmethod
    def add(self, note: ProviderNote) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, note: ProviderNote, *, expected_version: int) -> None:
        """Replace the stored note if its version still equals ``expected_version``.

        Raises ``ConcurrentModification`` otherwise. ``note.version`` is the
        new version and must already be bumped by the caller.
        """
        raise NotImplementedError


class PatientViewRepository(ABC):
    """Append-only store of patient view snapshots."""

    @abstractmethod
    def add(self, view: PatientView) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, view_id: UUID) -> Optional[PatientView]:
        raise NotImplementedError

    @abstractmethod
    def list_by_consultation(self, consultation_id: UUID) -> List[PatientView]:
        """Oldest first."""
        raise NotImplementedError


class ProcessedTemplateRepository(ABC):
    @abstractmethod
    def add(self, processed: ProcessedTemplate) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, processed_id: UUID) -> Optional[ProcessedTemplate]:
        raise NotImplementedError
