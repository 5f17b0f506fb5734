"""Placeholder resolution for template sections.

A placeholder is an upper-case token in square brackets, e.g. ``[PLAN]``.
Each token is offered to an ordered chain of sources and the first source
that knows the name supplies the value:

1. explicit ``extra_context`` overrides
2. the patient record
3. the recommendation bundle
4. consultation / provider metadata

Everything here is a pure function of a frozen :class:`ResolutionContext`.
Nothing reads the clock or the process locale, so resolving the same content
against the same context always yields the same string.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from src.notesynth.domain.models.intake import Consultation
from src.notesynth.domain.models.patient import PatientRecord
from src.notesynth.domain.models.recommendation import RecommendationBundle

PLACEHOLDER_RE = re.compile(r"\[([A-Z][A-Z0-9_]*)\]")

RECOMMENDATION_PLACEHOLDERS = frozenset({"SUMMARY", "ASSESSMENT", "PLAN"})

NONE_RECORDED = "None recorded"


def pending_marker(name: str) -> str:
    return f"[pending: {name}]"


@dataclass(frozen=True)
class ResolutionContext:
    patient: PatientRecord
    bundle: Optional[RecommendationBundle] = None
    consultation: Optional[Consultation] = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    default_clinic_name: Optional[str] = None
    high_confidence_threshold: float = 0.7

    @property
    def reference_date(self) -> Optional[date]:
        if self.consultation is None:
            return None
        return self.consultation.consultation_date


def build_context(
    *,
    patient: PatientRecord,
    bundle: Optional[RecommendationBundle] = None,
    consultation: Optional[Consultation] = None,
    extra_context: Optional[Mapping[str, Any]] = None,
    default_clinic_name: Optional[str] = None,
    high_confidence_threshold: float = 0.7,
) -> ResolutionContext:
    extra = {str(k).upper(): v for k, v in (extra_context or {}).items()}
    return ResolutionContext(
        patient=patient,
        bundle=bundle,
        consultation=consultation,
        extra=MappingProxyType(extra),
        default_clinic_name=default_clinic_name,
        high_confidence_threshold=high_confidence_threshold,
    )


@dataclass(frozen=True)
class Resolved:
    value: str
    # False when the value is a stand-in (e.g. a pending marker) and the
    # placeholder should still be reported as missing.
    complete: bool = True


Source = Callable[[str, ResolutionContext], Optional[Resolved]]


# Rendering


def render_value(value: Any) -> str:
    """Render a value without any locale-dependent formatting."""

    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        return _format_number(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return render_list(render_value(v) for v in value)
    return str(value)


def _format_number(value: Any) -> str:
    dec = value if isinstance(value, Decimal) else Decimal(repr(value))
    if not dec.is_finite():
        return str(dec)
    text = format(dec.normalize(), "f")
    return "0" if text == "-0" else text


def render_list(items) -> str:
    lines = [f"- {item}" for item in items if item]
    return "\n".join(lines) if lines else NONE_RECORDED


# Sources


def extra_context_source(name: str, ctx: ResolutionContext) -> Optional[Resolved]:
    value = ctx.extra.get(name)
    if value is None:
        return None
    return Resolved(render_value(value))


def patient_source(name: str, ctx: ResolutionContext) -> Optional[Resolved]:
    patient = ctx.patient
    if name == "PATIENT_NAME":
        return Resolved(patient.full_name)
    if name == "PATIENT_FIRST_NAME":
        return Resolved(patient.first_name)
    if name == "PATIENT_LAST_NAME":
        return Resolved(patient.last_name)
    if name == "PATIENT_DOB" and patient.date_of_birth is not None:
        return Resolved(render_value(patient.date_of_birth))
    if name == "PATIENT_AGE" and ctx.reference_date is not None:
        age = patient.age_on(ctx.reference_date)
        if age is not None:
            return Resolved(render_value(age))
    if name == "PATIENT_SEX" and patient.sex:
        return Resolved(patient.sex)
    if name == "MEDICATIONS":
        return Resolved(
            render_list(
                " ".join(part for part in (m.name, m.dose, m.frequency) if part)
                for m in patient.active_medications()
            )
        )
    if name == "ALLERGIES":
        return Resolved(render_list(patient.allergies))
    return None


def recommendation_source(name: str, ctx: ResolutionContext) -> Optional[Resolved]:
    if name not in RECOMMENDATION_PLACEHOLDERS:
        return None
    bundle = ctx.bundle
    if bundle is None:
        return Resolved(pending_marker(name), complete=False)

    if name == "SUMMARY":
        if not bundle.summary:
            return None
        lines = []
        for item in bundle.summary:
            line = f"- {item.text}"
            if item.confidence >= ctx.high_confidence_threshold:
                line += " (high-confidence)"
            lines.append(line)
        return Resolved("\n".join(lines))
    if name == "ASSESSMENT" and bundle.assessment.strip():
        return Resolved(bundle.assessment.strip())
    if name == "PLAN" and bundle.plan.strip():
        return Resolved(bundle.plan.strip())
    return None


def metadata_source(name: str, ctx: ResolutionContext) -> Optional[Resolved]:
    consultation = ctx.consultation
    if name == "CLINIC_NAME":
        clinic = (consultation.clinic_name if consultation is not None else None) or ctx.default_clinic_name
        return Resolved(clinic) if clinic else None
    if consultation is None:
        return None
    if name == "PROVIDER_NAME" and consultation.provider_name:
        return Resolved(consultation.provider_name)
    if name == "DATE":
        return Resolved(render_value(consultation.consultation_date))
    if name == "CONSULTATION_ID":
        return Resolved(str(consultation.id))
    return None


DEFAULT_SOURCES: Tuple[Source, ...] = (
    extra_context_source,
    patient_source,
    recommendation_source,
    metadata_source,
)


def resolve_content(
    content: str,
    ctx: ResolutionContext,
    sources: Sequence[Source] = DEFAULT_SOURCES,
) -> Tuple[str, List[str]]:
    """Substitute every placeholder in ``content``.

    Returns the processed text and the names left unresolved, in order of
    first appearance. Unknown placeholders stay in the text verbatim.
    Substituted values are not re-scanned.
    """

    unresolved: List[str] = []

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        for source in sources:
            resolved = source(name, ctx)
            if resolved is None:
                continue
            if not resolved.complete and name not in unresolved:
                unresolved.append(name)
            return resolved.value
        if name not in unresolved:
            unresolved.append(name)
        return match.group(0)

    return PLACEHOLDER_RE.sub(_substitute, content), unresolved


def still_unresolved(content: str, names: Sequence[str]) -> List[str]:
    """Names whose token or pending marker still appears in edited content."""

    return [n for n in names if f"[{n}]" in content or pending_marker(n) in content]
