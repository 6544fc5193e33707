"""Reminder scheduling: materializes the fixed pre-appointment reminders."""

from __future__ import annotations

import logging
from datetime import timedelta

from rivor.clock import Clock, utcnow
from rivor.models.appointment import Appointment
from rivor.models.enums import ReminderKind
from rivor.models.reminder import ReminderWorkItem
from rivor.repositories.base import ReminderRepository

logger = logging.getLogger(__name__)

REMINDER_OFFSETS: dict[ReminderKind, timedelta] = {
    ReminderKind.HOURS_24: timedelta(hours=24),
    ReminderKind.HOURS_2: timedelta(hours=2),
    ReminderKind.MINUTES_30: timedelta(minutes=30),
}


class ReminderScheduler:
    """Creates one work item per reminder kind whose trigger is still ahead."""

    def __init__(self, reminders: ReminderRepository, clock: Clock = utcnow) -> None:
        self._reminders = reminders
        self._clock = clock

    def plan(self, appointment: Appointment) -> list[ReminderWorkItem]:
        """Work items for reminders whose trigger instant is strictly after now."""
        now = self._clock()
        items: list[ReminderWorkItem] = []
        for kind, offset in REMINDER_OFFSETS.items():
            trigger_at = appointment.scheduled_at - offset
            if trigger_at <= now:
                continue
            items.append(ReminderWorkItem(
                organization_id=appointment.organization_id,
                appointment_id=appointment.id,
                kind=kind.value,
                trigger_at=trigger_at,
            ))
        return items

    async def schedule(self, appointment: Appointment) -> list[ReminderWorkItem]:
        """Persist the planned reminders and return them."""
        items = self.plan(appointment)
        if items:
            await self._reminders.add_many(items)

        logger.info(
            "Scheduled %d/%d reminder(s) for appointment %s",
            len(items),
            len(REMINDER_OFFSETS),
            appointment.id,
        )
        return items
