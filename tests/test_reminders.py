"""Tests for pre-appointment reminder planning."""

from __future__ import annotations

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from rivor.models.appointment import Appointment
from rivor.models.enums import ReminderKind
from rivor.scheduling.reminders import REMINDER_OFFSETS, ReminderScheduler

from tests.conftest import FROZEN_NOW


def _appointment(hours_ahead: float) -> Appointment:
    start = FROZEN_NOW + timedelta(hours=hours_ahead)
    return Appointment(
        id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        appointment_type="meeting",
        scheduled_at=start,
        duration=60,
        ends_at=start + timedelta(hours=1),
        status="pending",
    )


class TestPlan:
    def test_all_three_when_far_ahead(self, reminder_repo, clock):
        appointment = _appointment(48)
        items = ReminderScheduler(reminder_repo, clock).plan(appointment)

        assert [i.kind for i in items] == [k.value for k in REMINDER_OFFSETS]
        for item in items:
            assert item.trigger_at == appointment.scheduled_at - REMINDER_OFFSETS[ReminderKind(item.kind)]
            assert item.appointment_id == appointment.id
            assert item.organization_id == appointment.organization_id

    def test_drops_reminders_already_past(self, reminder_repo, clock):
        items = ReminderScheduler(reminder_repo, clock).plan(_appointment(3))
        assert [i.kind for i in items] == [ReminderKind.HOURS_2.value, ReminderKind.MINUTES_30.value]

    def test_only_thirty_minute(self, reminder_repo, clock):
        items = ReminderScheduler(reminder_repo, clock).plan(_appointment(1))
        assert [i.kind for i in items] == [ReminderKind.MINUTES_30.value]

    def test_trigger_exactly_now_is_dropped(self, reminder_repo, clock):
        # 24h reminder would fire at exactly now
        items = ReminderScheduler(reminder_repo, clock).plan(_appointment(24))
        assert ReminderKind.HOURS_24.value not in [i.kind for i in items]
        assert len(items) == 2

    def test_none_when_imminent(self, reminder_repo, clock):
        assert ReminderScheduler(reminder_repo, clock).plan(_appointment(0.25)) == []


class TestSchedule:
    @pytest.mark.asyncio()
    async def test_persists_planned_items(self, reminder_repo, clock):
        appointment = _appointment(48)
        items = await ReminderScheduler(reminder_repo, clock).schedule(appointment)

        stored = await reminder_repo.list_for_appointment(appointment.id)
        assert len(stored) == 3
        assert stored == sorted(items, key=lambda i: i.trigger_at)

    @pytest.mark.asyncio()
    async def test_nothing_to_persist(self, clock):
        repo = AsyncMock()
        items = await ReminderScheduler(repo, clock).schedule(_appointment(0.25))

        assert items == []
        repo.add_many.assert_not_awaited()
