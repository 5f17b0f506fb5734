from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import UUID, uuid4

from src.notesynth.domain.models.intake import Consultation, IntakeReceipt, IntakeSubmission
from src.notesynth.errors import NotFound


class InMemoryIntakeService:
    """Records intake submissions and the consultations they open.

    Form validation belongs to the intake layer; by the time a submission
    reaches this service it is accepted as-is.
    """

    def __init__(self) -> None:
        self._consultations: Dict[UUID, Consultation] = {}

    def submit(self, submission: IntakeSubmission) -> IntakeReceipt:
        now = datetime.now(timezone.utc)
        consultation = Consultation(
            id=uuid4(),
            form_id=uuid4(),
            patient_id=submission.patient_id,
            provider_id=submission.provider_id,
            category_id=submission.category_id,
            form_data=dict(submission.form_data),
            provider_name=submission.provider_name,
            clinic_name=submission.clinic_name,
            consultation_date=now.date(),
            created_at=now,
        )
        self._consultations[consultation.id] = consultation
        return IntakeReceipt(form_id=consultation.form_id, consultation_id=consultation.id)

    def get_consultation(self, consultation_id: UUID) -> Optional[Consultation]:
        return self._consultations.get(consultation_id)

    def require_consultation(self, consultation_id: UUID) -> Consultation:
        consultation = self.get_consultation(consultation_id)
        if consultation is None:
            raise NotFound("Consultation not found", context={"consultation_id": str(consultation_id)})
        return consultation


intake_service = InMemoryIntakeService()
