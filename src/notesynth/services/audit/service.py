from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """Structured representation of an audit event.

    Carries identifiers, types and counts only. Note text, section content
    and patient demographics never go in here.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    subject: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


class AuditService:
    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        subject: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a structured audit event.

        - `action`: high-level verb, e.g., "create", "finalize", "share".
        - `resource_type`: coarse type, e.g., "provider_note", "template".
        - `resource_id`: stable identifier (UUID string) when available.
        - `subject`: caller identifier; inferred from the API-key dependency
          when omitted.
        - `extra`: optional small dict of non-PHI metadata (counts, versions).
        """

        if subject is None:
            from src.notesynth.security import get_current_subject

            subject = get_current_subject()

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            subject=subject,
            extra=extra,
        )

        try:
            logger.info(json.dumps(asdict(event)))
        except TypeError:
            # Something in extra is not JSON serializable; drop it rather
            # than the whole event.
            safe_event = asdict(event)
            safe_event["extra"] = None
            logger.info(json.dumps(safe_event))
        return event


audit_service = AuditService()
