"""Domain exceptions for the note synthesis pipeline.

Hierarchy::

    NoteSynthesisError (base)
    ├── ValidationError            bad input shape, fixable by the caller
    ├── NotFound                   missing template / patient / note / view
    │   └── InvalidContext         processing context refers to unknown records
    ├── InvalidState               illegal lifecycle transition
    ├── ConcurrentModification     optimistic-lock conflict, retry on fresh state
    ├── RecommendationUnavailable  generator failed or timed out (degraded mode)
    ├── TemplateInactive           template version superseded, re-fetch latest
    └── PredicateError             patient filter rule could not be evaluated

Placeholder misses and ``PredicateError`` are recovered locally by the
processor and the visibility resolver. Everything else propagates to the
caller; the HTTP layer maps each class to a status code via ``code``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class NoteSynthesisError(Exception):
    """Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description.
        context: Small dict of identifiers useful for debugging. Must never
            carry note text or other PHI.
    """

    code = "note_synthesis_error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class ValidationError(NoteSynthesisError):
    code = "validation_error"


class NotFound(NoteSynthesisError):
    code = "not_found"


class InvalidContext(NotFound):
    """Raised when a processing request names a patient (or consultation)
    that does not exist."""

    code = "invalid_context"


class InvalidState(NoteSynthesisError):
    code = "invalid_state"


class ConcurrentModification(NoteSynthesisError):
    """The stored record changed since the caller read it.

    Retryable: the caller should reload the record and decide again.
    """

    code = "concurrent_modification"


class RecommendationUnavailable(NoteSynthesisError):
    code = "recommendation_unavailable"


class TemplateInactive(NoteSynthesisError):
    code = "template_inactive"


class PredicateError(NoteSynthesisError):
    code = "predicate_error"
