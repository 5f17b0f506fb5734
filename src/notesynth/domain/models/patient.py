from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Medication(BaseModel):
    name: str
    dose: Optional[str] = None
    frequency: Optional[str] = None
    active: bool = True


class PatientRecord(BaseModel):
    """Patient fields the pipeline reads.

    This is not the system of record for patients; it is the slice of the
    chart needed for placeholder resolution and patient-view filtering.
    """

    id: str
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    sex: Optional[str] = None
    # Care category the patient is enrolled under, e.g. "weight_management".
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    programs: List[str] = Field(default_factory=list)
    medications: List[Medication] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def age_on(self, as_of: date) -> Optional[int]:
        if self.date_of_birth is None:
            return None
        dob = self.date_of_birth
        years = as_of.year - dob.year
        if (as_of.month, as_of.day) < (dob.month, dob.day):
            years -= 1
        return years

    def active_medications(self) -> List[Medication]:
        return [m for m in self.medications if m.active]

    def attributes(self, as_of: date) -> Dict[str, Any]:
        """Attribute set that patient filter rules are evaluated against.

        Attributes whose value is unknown are left out entirely, so a rule
        that references them fails to evaluate and the section stays hidden.
        """

        attrs: Dict[str, Any] = {
            "tags": list(self.tags),
            "programs": list(self.programs),
        }
        age = self.age_on(as_of)
        if age is not None:
            attrs["age"] = age
        if self.category is not None:
            attrs["category"] = self.category
        if self.sex is not None:
            attrs["sex"] = self.sex
        return attrs
