"""Conflict detection and alternative-slot suggestion for appointment booking.

Windows are half-open: ``[start, start + duration)``. Two windows collide
iff ``a.start < b.end and b.start < a.end``, so back-to-back bookings
never conflict.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from rivor.clock import Clock, utcnow
from rivor.models.appointment import Appointment
from rivor.repositories.base import AppointmentRepository
from rivor.schemas.appointments import SlotSuggestion

logger = logging.getLogger(__name__)

# Candidate offsets from the requested start, tried in this order
SUGGESTION_OFFSETS: tuple[timedelta, ...] = (
    timedelta(minutes=-60),
    timedelta(minutes=-30),
    timedelta(minutes=30),
    timedelta(minutes=60),
    timedelta(hours=24),
)

MAX_SUGGESTIONS = 3


def windows_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """True if the half-open windows intersect at all."""
    return a_start < b_end and b_start < a_end


class ConflictResolver:
    """Reads existing appointments to detect overlaps and propose alternatives."""

    def __init__(self, appointments: AppointmentRepository, clock: Clock = utcnow) -> None:
        self._appointments = appointments
        self._clock = clock

    async def check(
        self,
        org_id: uuid.UUID,
        start: datetime,
        duration_minutes: int,
        property_address: str | None = None,
    ) -> list[Appointment]:
        """Pending/confirmed appointments overlapping the proposed window.

        An empty list means the slot is free.
        """
        end = start + timedelta(minutes=duration_minutes)
        return await self._appointments.find_overlapping(org_id, start, end, property_address)

    async def suggest(
        self,
        org_id: uuid.UUID,
        requested_time: datetime,
        duration_minutes: int,
    ) -> list[SlotSuggestion]:
        """Up to three conflict-free, future start times near the request.

        Candidates are re-checked across the whole organization (no property
        filter) and returned in offset order, not by proximity.
        """
        now = self._clock()
        suggestions: list[SlotSuggestion] = []

        for offset in SUGGESTION_OFFSETS:
            candidate = requested_time + offset
            if candidate <= now:
                continue
            conflicts = await self.check(org_id, candidate, duration_minutes)
            if conflicts:
                continue
            suggestions.append(SlotSuggestion(scheduled_at=candidate))
            if len(suggestions) >= MAX_SUGGESTIONS:
                break

        logger.debug(
            "Suggested %d alternative slot(s) for %s (org=%s)",
            len(suggestions),
            requested_time.isoformat(),
            org_id,
        )
        return suggestions
