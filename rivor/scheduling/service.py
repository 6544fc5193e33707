"""Appointment service: create, update, and list appointments for an organization.

Booking goes through ``AppointmentRepository.create_if_no_conflict`` so two
overlapping requests cannot both succeed. Everything after the insert
(confirmation request, reminders, follow-up setup) is best-effort: a
failure there is logged and never undoes the booking.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import UTC, timedelta
from typing import Any

from rivor.clock import Clock, utcnow
from rivor.config import settings
from rivor.errors import LookupFailure, NotFoundError, SlotConflictError, ValidationError
from rivor.events.bus import emit
from rivor.models.appointment import Appointment
from rivor.models.enums import AppointmentStatus
from rivor.repositories.base import AppointmentRepository, ContactLookup
from rivor.scheduling.conflicts import ConflictResolver
from rivor.scheduling.insights import generate_schedule_insights, summarize
from rivor.scheduling.reminders import ReminderScheduler
from rivor.schemas.appointments import (
    AppointmentCreate,
    AppointmentCreated,
    AppointmentFilters,
    AppointmentListing,
    AppointmentRead,
    AppointmentUpdate,
)
from rivor.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

TokenFactory = Callable[[], str]

# Follow-up trigger used when a completed appointment is reported
COMPLETED_TRIGGER = "appointment_completed"


def new_token() -> str:
    """32 hex chars from 16 cryptographically random bytes."""
    return secrets.token_hex(16)


class AppointmentService:
    """Books appointments without double-booking and reports on the schedule."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        reminder_scheduler: ReminderScheduler,
        contacts: ContactLookup,
        clock: Clock = utcnow,
        token_factory: TokenFactory = new_token,
    ) -> None:
        self._appointments = appointments
        self._reminders = reminder_scheduler
        self._contacts = contacts
        self._clock = clock
        self._new_token = token_factory
        self.resolver = ConflictResolver(appointments, clock)

    # ── Create ───────────────────────────────────────────────────────

    async def create(
        self,
        org_id: uuid.UUID,
        request: AppointmentCreate,
        created_by: str | None = None,
    ) -> AppointmentCreated:
        """Book an appointment.

        Raises:
            ValidationError: type or time missing, or time not in the future.
            SlotConflictError: the window overlaps a pending/confirmed appointment.
        """
        if request.appointment_type is None or request.scheduled_at is None:
            raise ValidationError("Appointment type and scheduled time required")

        scheduled_at = request.scheduled_at
        if scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=UTC)

        now = self._clock()
        if scheduled_at <= now:
            raise ValidationError("Appointment must be scheduled in the future")

        status = AppointmentStatus.CONFIRMED if request.auto_confirm else AppointmentStatus.PENDING
        appointment = Appointment(
            organization_id=org_id,
            contact_id=request.contact_id,
            lead_id=request.lead_id,
            email_thread_id=request.email_thread_id,
            appointment_type=request.appointment_type.value,
            scheduled_at=scheduled_at,
            duration=request.duration,
            ends_at=scheduled_at + timedelta(minutes=request.duration),
            status=status.value,
            location=request.location,
            property_address=request.property_address,
            lockbox_code=request.lockbox_code,
            showing_instructions=request.showing_instructions,
            attendee_emails=list(request.attendee_emails),
            requirements=request.requirements,
            confirmation_token=self._new_token(),
            reschedule_token=self._new_token(),
            created_by=created_by,
            reminders_sent=[],
        )
        appointment.notes = await self._build_notes(appointment)

        conflicts = await self._appointments.create_if_no_conflict(appointment)
        if conflicts:
            suggestions = await self.resolver.suggest(org_id, scheduled_at, request.duration)
            logger.info(
                "Slot conflict for org=%s at %s: %d overlapping, %d suggestion(s)",
                org_id,
                scheduled_at.isoformat(),
                len(conflicts),
                len(suggestions),
            )
            raise SlotConflictError(conflicts, suggestions)

        logger.info(
            "Appointment created: id=%s org=%s type=%s status=%s",
            appointment.id,
            org_id,
            appointment.appointment_type,
            appointment.status,
        )

        await self._publish(SystemEvent(
            event_type=EventType.APPOINTMENT_CREATED,
            org_id=org_id,
            entity_id=appointment.id,
            actor_id=created_by,
            data=self._event_data(appointment),
            source_module="scheduling.service",
        ))
        await self._request_confirmation(appointment)

        try:
            reminders = await self._reminders.schedule(appointment)
        except Exception:
            logger.exception("Reminder scheduling failed for appointment %s", appointment.id)
        else:
            if reminders:
                await self._publish(SystemEvent(
                    event_type=EventType.REMINDERS_SCHEDULED,
                    org_id=org_id,
                    entity_id=appointment.id,
                    data={"reminders": [
                        {"kind": r.kind, "trigger_at": r.trigger_at.isoformat()} for r in reminders
                    ]},
                    source_module="scheduling.service",
                ))

        if appointment.status == AppointmentStatus.CONFIRMED.value:
            await self._request_followup(appointment, f"{appointment.appointment_type}_followup")

        base_url = settings.scheduling.public_base_url.rstrip("/")
        return AppointmentCreated(
            appointment=AppointmentRead.model_validate(appointment),
            confirmation_url=f"{base_url}/appointment/confirm/{appointment.confirmation_token}",
            reschedule_url=f"{base_url}/appointment/reschedule/{appointment.reschedule_token}",
        )

    # ── Update ───────────────────────────────────────────────────────

    async def update(
        self,
        org_id: uuid.UUID,
        appointment_id: uuid.UUID,
        patch: AppointmentUpdate,
    ) -> Appointment:
        """Apply a status change and/or notes.

        Any of the four statuses may be set from any other; cancelling does
        not touch reminders or running follow-ups.
        """
        appointment = await self._appointments.get(org_id, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)

        now = self._clock()
        old_status = appointment.status

        if patch.status is not None:
            appointment.status = patch.status.value
            if patch.status == AppointmentStatus.COMPLETED:
                appointment.completed_at = patch.completed_at or now
            elif patch.status == AppointmentStatus.CANCELLED:
                appointment.cancelled_at = now
                appointment.cancel_reason = patch.cancel_reason

        if patch.notes:
            appointment.notes = patch.notes

        await self._appointments.save(appointment)

        logger.info(
            "Appointment updated: id=%s status=%s -> %s",
            appointment.id,
            old_status,
            appointment.status,
        )

        event_type = {
            AppointmentStatus.COMPLETED: EventType.APPOINTMENT_COMPLETED,
            AppointmentStatus.CANCELLED: EventType.APPOINTMENT_CANCELLED,
        }.get(patch.status, EventType.APPOINTMENT_UPDATED)
        data = self._event_data(appointment)
        data["previous_status"] = old_status
        if patch.cancel_reason and patch.status == AppointmentStatus.CANCELLED:
            data["cancel_reason"] = patch.cancel_reason

        await self._publish(SystemEvent(
            event_type=event_type,
            org_id=org_id,
            entity_id=appointment.id,
            data=data,
            source_module="scheduling.service",
        ))

        if patch.status == AppointmentStatus.COMPLETED:
            await self._request_followup(appointment, COMPLETED_TRIGGER)

        return appointment

    # ── List ─────────────────────────────────────────────────────────

    async def list(self, org_id: uuid.UUID, filters: AppointmentFilters) -> AppointmentListing:
        """Matching appointments (earliest first) with insights and summary counts."""
        appointments = await self._appointments.list(org_id, filters)
        return AppointmentListing(
            appointments=[AppointmentRead.model_validate(a) for a in appointments],
            insights=generate_schedule_insights(appointments, self._clock()),
            summary=summarize(appointments),
        )

    # ── Downstream signals ───────────────────────────────────────────

    async def _request_confirmation(self, appointment: Appointment) -> None:
        """Record the confirmation entry and hand the send to subscribers."""
        entry = {
            "type": "confirmation",
            "sent_at": self._clock().isoformat(),
            "method": "email",
        }
        appointment.reminders_sent = [*(appointment.reminders_sent or []), entry]
        try:
            await self._appointments.save(appointment)
        except Exception:
            logger.exception("Could not record confirmation for appointment %s", appointment.id)
            return

        await self._publish(SystemEvent(
            event_type=EventType.APPOINTMENT_CONFIRMATION_REQUESTED,
            org_id=appointment.organization_id,
            entity_id=appointment.id,
            data={
                "appointment_id": str(appointment.id),
                "attendee_emails": list(appointment.attendee_emails or []),
                "confirmation_token": appointment.confirmation_token,
                "reschedule_token": appointment.reschedule_token,
            },
            source_module="scheduling.service",
        ))

    async def _request_followup(self, appointment: Appointment, trigger_event: str) -> None:
        await self._publish(SystemEvent(
            event_type=EventType.FOLLOWUP_SETUP_REQUESTED,
            org_id=appointment.organization_id,
            entity_id=appointment.id,
            data={
                **self._event_data(appointment),
                "trigger_event": trigger_event,
            },
            source_module="scheduling.service",
        ))

    @staticmethod
    async def _publish(event: SystemEvent) -> None:
        try:
            await emit(event)
        except Exception:
            logger.exception(
                "Failed to emit %s for %s",
                event.event_type.value,
                event.entity_id,
            )

    @staticmethod
    def _event_data(appointment: Appointment) -> dict[str, Any]:
        return {
            "appointment_id": str(appointment.id),
            "appointment_type": appointment.appointment_type,
            "status": appointment.status,
            "scheduled_at": appointment.scheduled_at.isoformat(),
            "contact_id": str(appointment.contact_id) if appointment.contact_id else None,
            "lead_id": str(appointment.lead_id) if appointment.lead_id else None,
            "email_thread_id": appointment.email_thread_id,
        }

    # ── Notes ────────────────────────────────────────────────────────

    async def _build_notes(self, appointment: Appointment) -> str:
        """Human-readable summary stored with the appointment."""
        try:
            context = await self._context_lines(appointment)
        except LookupFailure:
            logger.warning("Context lookup failed while writing notes for org=%s", appointment.organization_id)
            return f"{appointment.appointment_type} appointment auto-scheduled"

        lines = [
            f"{appointment.appointment_type.capitalize()} scheduled",
            f"Duration: {appointment.duration} minutes",
        ]
        if appointment.property_address:
            lines.append(f"Property: {appointment.property_address}")
        if appointment.location:
            lines.append(f"Location: {appointment.location}")
        lines.extend(context)
        lines.append("Auto-scheduled by assistant")
        return "\n".join(lines)

    async def _context_lines(self, appointment: Appointment) -> list[str]:
        org_id = appointment.organization_id
        lines: list[str] = []
        if appointment.contact_id:
            contact = await self._contacts.get_contact(org_id, appointment.contact_id)
            if contact is not None:
                lines.append(f"Contact: {contact.display_name or 'Unknown'}")
        if appointment.lead_id:
            lead = await self._contacts.get_lead(org_id, appointment.lead_id)
            if lead is not None:
                lines.append(f"Lead: {lead.title or 'Unknown Lead'}")
                lines.append(f"Stage: {lead.stage or 'Unknown'}")
                if lead.property_value:
                    lines.append(f"Property Value: ${lead.property_value:,.0f}")
        return lines
