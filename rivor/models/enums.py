"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store the `.value`.
"""

from __future__ import annotations

from enum import Enum


class AppointmentType(str, Enum):
    """Kind of appointment being booked."""

    SHOWING = "showing"
    MEETING = "meeting"
    CALL = "call"
    OTHER = "other"


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that occupy a slot on the calendar
BLOCKING_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
)


class ReminderKind(str, Enum):
    """Fixed reminder offsets before an appointment starts."""

    HOURS_24 = "24_hour"
    HOURS_2 = "2_hour"
    MINUTES_30 = "30_minute"


class StepAction(str, Enum):
    """What a sequence step does when it becomes due."""

    SEND_EMAIL = "send_email"
    SEND_SMS = "send_sms"
    CREATE_TASK = "create_task"
    SCHEDULE_CALL = "schedule_call"


MESSAGE_ACTIONS: frozenset[StepAction] = frozenset({StepAction.SEND_EMAIL, StepAction.SEND_SMS})


class ExecutionStatus(str, Enum):
    """Follow-up execution lifecycle states."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class InsightType(str, Enum):
    """Schedule insight categories."""

    HIGH_ACTIVITY = "high_activity"
    HIGH_CANCELLATION = "high_cancellation"
    PROPERTY_ACTIVITY = "property_activity"
