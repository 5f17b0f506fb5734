from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.notesynth.domain.models.patient_view import PatientView
from src.notesynth.domain.models.provider_note import ProviderNote


class Base(DeclarativeBase):
    pass


class ProviderNoteORM(Base):
    __tablename__ = "provider_notes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    patient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(String, nullable=False)
    consultation_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    template_version_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    template_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    recommendation_bundle_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    processed_template_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    title: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Section and medication lists are stored as JSON documents; they are
    # only ever read back as a whole with the note.
    sections: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    medications: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    assessment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    plan: Mapped[str] = mapped_column(Text, nullable=False, default="")
    follow_up_period: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False)
    is_shared_with_patient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shared_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @staticmethod
    def columns_from_domain(note: ProviderNote) -> dict[str, Any]:
        data = note.model_dump(mode="python")
        data["status"] = note.status.value
        data["sections"] = [s.model_dump(mode="json") for s in note.sections]
        data["medications"] = [m.model_dump(mode="json") for m in note.medications]
        return data

    @classmethod
    def from_domain(cls, note: ProviderNote) -> "ProviderNoteORM":
        return cls(**cls.columns_from_domain(note))

    def to_domain(self) -> ProviderNote:
        return ProviderNote.model_validate(
            {
                "id": self.id,
                "patient_id": self.patient_id,
                "provider_id": self.provider_id,
                "consultation_id": self.consultation_id,
                "template_version_id": self.template_version_id,
                "template_id": self.template_id,
                "recommendation_bundle_id": self.recommendation_bundle_id,
                "processed_template_id": self.processed_template_id,
                "title": self.title,
                "content": self.content,
                "sections": self.sections or [],
                "medications": self.medications or [],
                "assessment": self.assessment,
                "plan": self.plan,
                "follow_up_period": self.follow_up_period,
                "status": self.status,
                "is_shared_with_patient": self.is_shared_with_patient,
                "version": self.version,
                "created_at": self.created_at,
                "updated_at": self.updated_at,
                "finalized_at": self.finalized_at,
                "shared_at": self.shared_at,
            }
        )


class PatientViewORM(Base):
    __tablename__ = "patient_views"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    note_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True, index=True)
    consultation_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True, index=True)
    patient_id: Mapped[str] = mapped_column(String, nullable=False)
    provider_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sections: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, view: PatientView) -> "PatientViewORM":
        return cls(
            id=view.id,
            note_id=view.note_id,
            consultation_id=view.consultation_id,
            patient_id=view.patient_id,
            provider_id=view.provider_id,
            sections=[s.model_dump(mode="json") for s in view.sections],
            config=view.config.model_dump(mode="json"),
            created_at=view.created_at,
        )

    def to_domain(self) -> PatientView:
        return PatientView.model_validate(
            {
                "id": self.id,
                "note_id": self.note_id,
                "consultation_id": self.consultation_id,
                "patient_id": self.patient_id,
                "provider_id": self.provider_id,
                "sections": self.sections or [],
                "config": self.config or {},
                "created_at": self.created_at,
            }
        )
