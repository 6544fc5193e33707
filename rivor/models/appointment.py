"""Appointment model: showings, meetings and calls booked for an organization."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from rivor.models.base import Base, TimestampMixin
from rivor.models.enums import AppointmentStatus


class Appointment(TimestampMixin, Base):
    """A booked appointment. Never hard-deleted; cancellation is a status."""

    __tablename__ = "appointments"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    # Weak references (lookup only)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    email_thread_id: Mapped[str | None] = mapped_column(String(255))

    # Scheduling
    appointment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, comment="Minutes")
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.PENDING.value, nullable=False
    )

    # Where / who
    location: Mapped[str | None] = mapped_column(String(500))
    property_address: Mapped[str | None] = mapped_column(String(500))
    lockbox_code: Mapped[str | None] = mapped_column(String(50))
    showing_instructions: Mapped[str | None] = mapped_column(Text)
    attendee_emails: Mapped[list[str]] = mapped_column(ARRAY(String(255)), default=list, nullable=False)
    requirements: Mapped[str | None] = mapped_column(Text)

    # Self-service links (generated once, immutable)
    confirmation_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    reschedule_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # Bookkeeping
    created_by: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text)
    reminders_sent: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancel_reason: Mapped[str | None] = mapped_column(String(500))

    __table_args__ = (
        Index("ix_appointments_org_window", "organization_id", "scheduled_at", "ends_at"),
    )

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} type={self.appointment_type} status={self.status} at={self.scheduled_at}>"
