"""Global subscriber that appends every SystemEvent to ``audit_log``.

The audit trail is best-effort: a failed write is logged and dropped so the
bus never retries it.
"""

from __future__ import annotations

import logging

from rivor.db.engine import session_scope
from rivor.models.audit import AuditLog
from rivor.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


def to_audit_row(event: SystemEvent) -> AuditLog:
    return AuditLog(
        event_type=event.event_type.value,
        occurred_at=event.timestamp,
        organization_id=event.org_id,
        entity_id=event.entity_id,
        actor_id=event.actor_id or "system",
        source_module=event.source_module,
        data=dict(event.data),
    )


async def audit_on_event(event: SystemEvent) -> None:
    try:
        async with session_scope() as db:
            db.add(to_audit_row(event))
    except Exception:
        logger.exception("Audit write failed for %s (entity=%s)", event.event_type.value, event.entity_id)
