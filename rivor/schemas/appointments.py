"""Pydantic schemas for appointment requests, filters, and listings."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from rivor.config import settings
from rivor.models.enums import AppointmentStatus, AppointmentType, InsightType


class AppointmentCreate(BaseModel):
    """Booking request.

    ``appointment_type`` and ``scheduled_at`` are optional here so the service
    can report their absence as a domain ValidationError.
    """

    appointment_type: AppointmentType | None = None
    scheduled_at: datetime | None = None
    duration: int = Field(
        default_factory=lambda: settings.scheduling.default_duration_minutes,
        gt=0,
        description="Minutes",
    )
    location: str | None = None
    property_address: str | None = None
    lockbox_code: str | None = None
    showing_instructions: str | None = None
    attendee_emails: list[str] = Field(default_factory=list)
    requirements: str | None = None
    contact_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    email_thread_id: str | None = None
    auto_confirm: bool = False


class AppointmentUpdate(BaseModel):
    """Patch: a status transition and/or replacement notes."""

    status: AppointmentStatus | None = None
    notes: str | None = None
    completed_at: datetime | None = None
    cancel_reason: str | None = None


class AppointmentFilters(BaseModel):
    """Listing filters. Date bounds are inclusive."""

    status: AppointmentStatus | None = None
    appointment_type: AppointmentType | None = None
    contact_id: uuid.UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(default_factory=lambda: settings.scheduling.list_limit, gt=0, le=500)


class SlotSuggestion(BaseModel):
    """An alternative start time with no conflicts."""

    scheduled_at: datetime
    available: bool = True


class ConflictSummary(BaseModel):
    """Minimal view of a colliding appointment."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    appointment_type: str
    scheduled_at: datetime
    ends_at: datetime
    status: str
    property_address: str | None = None


class Insight(BaseModel):
    """A side-effect-free observation over a set of appointments."""

    type: InsightType
    priority: str  # "low", "medium", "high"
    message: str
    action: str


class AppointmentSummary(BaseModel):
    """Counts over a listing."""

    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]


class AppointmentRead(BaseModel):
    """Appointment as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    contact_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    email_thread_id: str | None = None
    appointment_type: str
    scheduled_at: datetime
    duration: int
    ends_at: datetime
    status: str
    location: str | None = None
    property_address: str | None = None
    attendee_emails: list[str] = Field(default_factory=list)
    requirements: str | None = None
    notes: str | None = None
    confirmation_token: str
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None


class AppointmentCreated(BaseModel):
    """Create response: the appointment plus its self-service links."""

    appointment: AppointmentRead
    confirmation_url: str
    reschedule_url: str


class AppointmentListing(BaseModel):
    """List response: appointments, insights, and summary counts."""

    appointments: list[AppointmentRead]
    insights: list[Insight]
    summary: AppointmentSummary
