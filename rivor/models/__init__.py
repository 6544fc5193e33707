"""SQLAlchemy ORM models for the scheduling and automation core.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from rivor.models.appointment import Appointment
from rivor.models.audit import AuditLog
from rivor.models.base import Base
from rivor.models.contact import Contact, Lead
from rivor.models.enums import (
    AppointmentStatus,
    AppointmentType,
    ExecutionStatus,
    InsightType,
    ReminderKind,
    StepAction,
)
from rivor.models.execution import FollowUpExecution, make_target_key
from rivor.models.reminder import ReminderWorkItem
from rivor.models.sequence import FollowUpSequence

__all__ = [
    # Base
    "Base",
    # Models
    "Appointment",
    "ReminderWorkItem",
    "FollowUpSequence",
    "FollowUpExecution",
    "Contact",
    "Lead",
    "AuditLog",
    "make_target_key",
    # Enums
    "AppointmentType",
    "AppointmentStatus",
    "ReminderKind",
    "StepAction",
    "ExecutionStatus",
    "InsightType",
]
