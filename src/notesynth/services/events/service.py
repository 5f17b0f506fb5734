from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID, uuid4

from src.notesynth.domain.models.flow_event import FlowEvent, FlowEventType, FlowStatus, NoteSharedEvent

logger = logging.getLogger("notesynth.events")


class InMemoryFlowEventLog:
    """Append-only history of pipeline stage transitions per consultation.

    Events are immutable once appended. Flow status reporting reads the
    ordered history back out; nothing ever rewrites it.
    """

    def __init__(self) -> None:
        self._events: Dict[UUID, List[FlowEvent]] = {}
        self._lock = Lock()

    def append(
        self,
        consultation_id: UUID,
        event_type: FlowEventType,
        data: Optional[Dict[str, Any]] = None,
    ) -> FlowEvent:
        with self._lock:
            history = self._events.setdefault(consultation_id, [])
            event = FlowEvent(
                id=uuid4(),
                consultation_id=consultation_id,
                event_type=event_type,
                sequence=len(history) + 1,
                timestamp=datetime.now(timezone.utc),
                data=dict(data or {}),
            )
            history.append(event)
        logger.debug("Flow %s -> %s", consultation_id, event_type.value)
        return event

    def history(self, consultation_id: UUID) -> List[FlowEvent]:
        return list(self._events.get(consultation_id, []))

    def status(self, consultation_id: UUID) -> FlowStatus:
        history = self.history(consultation_id)
        return FlowStatus(
            consultation_id=consultation_id,
            current_status=history[-1].event_type if history else None,
            history=history,
        )


class NotePublisher(Protocol):
    """Hands note-shared events to the messaging collaborator."""

    def publish(self, event: NoteSharedEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class InMemoryOutbox:
    """Default publisher: records events for a delivery worker to drain.

    The pipeline never delivers messages itself.
    """

    def __init__(self) -> None:
        self._pending: List[NoteSharedEvent] = []
        self._lock = Lock()

    def publish(self, event: NoteSharedEvent) -> None:
        with self._lock:
            self._pending.append(event)
        logger.info(
            "Queued %s for consultation %s (view %s)",
            event.event_type,
            event.consultation_id,
            event.patient_view_id,
        )

    def pending(self) -> List[NoteSharedEvent]:
        return list(self._pending)

    def drain(self) -> List[NoteSharedEvent]:
        with self._lock:
            events, self._pending = self._pending, []
        return events


flow_event_log = InMemoryFlowEventLog()
note_outbox = InMemoryOutbox()
