"""Event envelope passed through ``rivor.events.bus``."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    APPOINTMENT_CREATED = "appointment.created"
    APPOINTMENT_UPDATED = "appointment.updated"
    APPOINTMENT_COMPLETED = "appointment.completed"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_CONFIRMATION_REQUESTED = "appointment.confirmation_requested"
    REMINDERS_SCHEDULED = "appointment.reminders_scheduled"
    FOLLOWUP_SETUP_REQUESTED = "appointment.followup_setup_requested"

    SEQUENCE_CREATED = "sequence.created"
    EXECUTION_STARTED = "execution.started"
    EXECUTION_STEP_COMPLETED = "execution.step_completed"
    EXECUTION_PAUSED = "execution.paused"
    EXECUTION_RESUMED = "execution.resumed"
    EXECUTION_COMPLETED = "execution.completed"

    # Picked up by outbound delivery
    MESSAGE_DUE = "action.message_due"
    TASK_DUE = "action.task_due"

    SERVICE_STARTED = "service.started"
    SERVICE_STOPPING = "service.stopping"


class SystemEvent(BaseModel):
    """A state change, with enough context for subscribers to act on it.

    ``org_id`` and ``entity_id`` are empty only for service lifecycle events.
    ``actor_id`` is the user who caused the change; ``None`` means the system.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    org_id: uuid.UUID | None = None
    entity_id: uuid.UUID | None = None
    actor_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    source_module: str | None = None
