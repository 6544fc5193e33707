"""Reminder work item: a schedulable reminder consumed by an external dispatcher."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from rivor.models.base import Base, TimestampMixin


class ReminderWorkItem(TimestampMixin, Base):
    """One reminder for one appointment, due at ``trigger_at``."""

    __tablename__ = "reminder_work_items"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("appointments.id"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    trigger_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<ReminderWorkItem appointment={self.appointment_id} kind={self.kind} at={self.trigger_at}>"
