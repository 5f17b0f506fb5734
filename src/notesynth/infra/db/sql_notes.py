from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.domain.models.provider_note import ProviderNote
from src.notesynth.errors import ConcurrentModification, ValidationError
from src.notesynth.infra.db.models import PatientViewORM, ProviderNoteORM
from src.notesynth.infra.db.repositories import PatientViewRepository, ProviderNoteRepository
from src.notesynth.infra.db.session import SessionFactory


class SqlProviderNoteRepository(ProviderNoteRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, note_id: UUID) -> Optional[ProviderNote]:
        session = self._session_factory()
        try:
            orm = session.get(ProviderNoteORM, note_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def list_by_consultation(self, consultation_id: UUID) -> List[ProviderNote]:
        session = self._session_factory()
        try:
            rows = session.scalars(
                select(ProviderNoteORM)
                .where(ProviderNoteORM.consultation_id == consultation_id)
                .order_by(ProviderNoteORM.created_at)
            ).all()
            return [row.to_domain() for row in rows]
        finally:
            session.close()

    def add(self, note: ProviderNote) -> None:
        session = self._session_factory()
        try:
            if session.get(ProviderNoteORM, note.id) is not None:
                raise ValidationError("Note already exists", context={"note_id": str(note.id)})
            session.add(ProviderNoteORM.from_domain(note))
            session.commit()
        finally:
            session.close()

    def update(self, note: ProviderNote, *, expected_version: int) -> None:
        values = ProviderNoteORM.columns_from_domain(note)
        values.pop("id")
        session = self._session_factory()
        try:
            # Single conditional UPDATE; a concurrent writer that got there
            # first leaves rowcount at 0.
            result = session.execute(
                update(ProviderNoteORM)
                .where(ProviderNoteORM.id == note.id, ProviderNoteORM.version == expected_version)
                .values(**values)
            )
            if result.rowcount != 1:
                session.rollback()
                raise ConcurrentModification(
                    "Note was modified concurrently",
                    context={"note_id": str(note.id), "expected_version": expected_version},
                )
            session.commit()
        finally:
            session.close()


class SqlPatientViewRepository(PatientViewRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def add(self, view: PatientView) -> None:
        session = self._session_factory()
        try:
            if session.get(PatientViewORM, view.id) is not None:
                raise ValidationError("Patient views are immutable", context={"view_id": str(view.id)})
            session.add(PatientViewORM.from_domain(view))
            session.commit()
        finally:
            session.close()

    def get(self, view_id: UUID) -> Optional[PatientView]:
        session = self._session_factory()
        try:
            orm = session.get(PatientViewORM, view_id)
            return orm.to_domain() if orm is not None else None
        finally:
            session.close()

    def list_by_consultation(self, consultation_id: UUID) -> List[PatientView]:
        session = self._session_factory()
        try:
            rows = session.scalars(
                select(PatientViewORM)
                .where(PatientViewORM.consultation_id == consultation_id)
                .order_by(PatientViewORM.created_at)
            ).all()
            return [row.to_domain() for row in rows]
        finally:
            session.close()
