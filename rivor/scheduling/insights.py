"""Schedule insights and summary counts over a listing. Pure functions."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timedelta

from rivor.models.appointment import Appointment
from rivor.models.enums import AppointmentStatus, AppointmentType, InsightType
from rivor.schemas.appointments import AppointmentSummary, Insight

HIGH_ACTIVITY_THRESHOLD = 10
HIGH_CANCELLATION_RATE = 0.2


def current_week(now: datetime) -> tuple[datetime, datetime]:
    """Sunday 00:00 (inclusive) to the following Sunday 00:00 (exclusive), in now's zone."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (now.weekday() + 1) % 7
    start = midnight - timedelta(days=days_since_sunday)
    return start, start + timedelta(days=7)


def generate_schedule_insights(appointments: Sequence[Appointment], now: datetime) -> list[Insight]:
    """Flags busy weeks, high cancellation rates, and showing activity."""
    insights: list[Insight] = []

    week_start, week_end = current_week(now)
    this_week = [a for a in appointments if week_start <= a.scheduled_at < week_end]
    if len(this_week) > HIGH_ACTIVITY_THRESHOLD:
        insights.append(Insight(
            type=InsightType.HIGH_ACTIVITY,
            priority="medium",
            message=f"Busy week ahead: {len(this_week)} appointments scheduled",
            action="Consider blocking buffer time between meetings",
        ))

    if appointments:
        cancelled = sum(1 for a in appointments if a.status == AppointmentStatus.CANCELLED.value)
        rate = cancelled / len(appointments)
        if rate > HIGH_CANCELLATION_RATE:
            insights.append(Insight(
                type=InsightType.HIGH_CANCELLATION,
                priority="high",
                message=f"{round(rate * 100)}% cancellation rate detected",
                action="Review confirmation and reminder processes",
            ))

    showings = [a for a in appointments if a.appointment_type == AppointmentType.SHOWING.value]
    if showings:
        properties = {s.property_address for s in showings if s.property_address}
        insights.append(Insight(
            type=InsightType.PROPERTY_ACTIVITY,
            priority="low",
            message=f"{len(showings)} property showings across {len(properties)} locations",
            action="Optimize travel routes for maximum efficiency",
        ))

    return insights


def summarize(appointments: Sequence[Appointment]) -> AppointmentSummary:
    """Totals per status (all statuses present) and per type (observed types only)."""
    by_status = {status.value: 0 for status in AppointmentStatus}
    for a in appointments:
        if a.status in by_status:
            by_status[a.status] += 1
    by_type = Counter(a.appointment_type for a in appointments)
    return AppointmentSummary(
        total=len(appointments),
        by_status=by_status,
        by_type=dict(by_type),
    )
