from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from src.notesynth.domain.models.patient import Medication, PatientRecord
from src.notesynth.errors import NotFound


class InMemoryPatientDirectory:
    """Read-mostly lookup of patient records used by the pipeline.

    The patient chart itself lives elsewhere; this directory is fed by the
    intake layer (or a sync job) and seeded with a couple of demo patients for
    local development.
    """

    def __init__(self, *, seed_defaults: bool = True) -> None:
        self._patients: Dict[str, PatientRecord] = {}
        if seed_defaults:
            self._seed_defaults()

    def _seed_defaults(self) -> None:
        self.upsert(
            PatientRecord(
                id="demo-patient-1",
                first_name="Jordan",
                last_name="Rivera",
                date_of_birth=date(1985, 4, 12),
                sex="F",
                category="weight_management",
                tags=["new_patient"],
                programs=["weight_management"],
                medications=[Medication(name="Metformin", dose="500 mg", frequency="twice daily")],
                allergies=["Penicillin"],
            )
        )
        self.upsert(
            PatientRecord(
                id="demo-patient-2",
                first_name="Sam",
                last_name="Okafor",
                date_of_birth=date(1972, 11, 3),
                sex="M",
                category="general",
            )
        )

    def upsert(self, patient: PatientRecord) -> PatientRecord:
        self._patients[patient.id] = patient
        return patient

    def get(self, patient_id: str) -> Optional[PatientRecord]:
        return self._patients.get(patient_id)

    def require(self, patient_id: str) -> PatientRecord:
        patient = self.get(patient_id)
        if patient is None:
            raise NotFound("Patient not found", context={"patient_id": patient_id})
        return patient


patient_directory = InMemoryPatientDirectory()
