"""Event subscribers that start follow-ups from appointment activity.

A FOLLOWUP_SETUP_REQUESTED event names a trigger event
(``appointment_completed``, ``showing_followup``, ...) and the appointment's
target; this subscriber turns it into a smart follow-up in its own session.
Missing sequences and duplicate runs are expected outcomes and only logged.
Other failures propagate so the event bus retries them.
"""

from __future__ import annotations

import logging
import uuid

from rivor.db.engine import async_session_factory
from rivor.errors import DuplicateExecutionError, NotFoundError
from rivor.events.bus import subscribe
from rivor.factory import build_sequence_engine
from rivor.schemas.events import EventType, SystemEvent
from rivor.schemas.sequences import ExecutionTarget

logger = logging.getLogger(__name__)


def _uuid_or_none(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


async def on_followup_setup_requested(event: SystemEvent) -> None:
    """Start the follow-up named by the event for the appointment's contact/lead."""
    trigger_event = event.data.get("trigger_event")
    if event.org_id is None or not trigger_event:
        logger.warning("Follow-up setup event %s missing org or trigger_event", event.id)
        return

    target = ExecutionTarget(
        contact_id=_uuid_or_none(event.data.get("contact_id")),
        lead_id=_uuid_or_none(event.data.get("lead_id")),
        email_thread_id=event.data.get("email_thread_id"),
    )
    if target.contact_id is None and target.lead_id is None:
        logger.info(
            "Skipping %s follow-up for appointment %s: no contact or lead",
            trigger_event,
            event.entity_id,
        )
        return

    async with async_session_factory() as db:
        engine = build_sequence_engine(db)
        try:
            execution = await engine.trigger_smart(event.org_id, trigger_event, target)
        except NotFoundError:
            logger.info("No follow-up sequence for %r (org=%s)", trigger_event, event.org_id)
            return
        except DuplicateExecutionError as exc:
            logger.info("Follow-up %r already running: execution=%s", trigger_event, exc.execution_id)
            return
        await db.commit()

    logger.info(
        "Post-appointment follow-up started: execution=%s trigger=%s appointment=%s",
        execution.id,
        trigger_event,
        event.entity_id,
    )


def register_subscribers() -> None:
    """Attach automation subscribers to the event bus. Call once at startup."""
    subscribe(on_followup_setup_requested, [EventType.FOLLOWUP_SETUP_REQUESTED])
