"""Shared fixtures: frozen clock, in-memory repositories, recording dispatcher."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from rivor.automation.engine import SequenceEngine
from rivor.repositories.memory import (
    InMemoryAppointmentRepository,
    InMemoryContactLookup,
    InMemoryExecutionRepository,
    InMemoryReminderRepository,
    InMemorySequenceRepository,
)
from rivor.scheduling.reminders import ReminderScheduler
from rivor.scheduling.service import AppointmentService
from rivor.schemas.sequences import DueAction

# Wednesday, 15:00 UTC
FROZEN_NOW = datetime(2026, 3, 4, 15, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatcher:
    """Collects due actions instead of delivering them."""

    def __init__(self) -> None:
        self.actions: list[DueAction] = []

    async def dispatch(self, action: DueAction) -> None:
        self.actions.append(action)


@pytest.fixture(autouse=True)
def emitted():
    """Patch event emission everywhere the core emits; yields the shared mock."""
    mock_emit = AsyncMock()
    with (
        patch("rivor.scheduling.service.emit", mock_emit),
        patch("rivor.automation.engine.emit", mock_emit),
        patch("rivor.automation.dispatch.emit", mock_emit),
    ):
        yield mock_emit


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def org_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def appointment_repo() -> InMemoryAppointmentRepository:
    return InMemoryAppointmentRepository()


@pytest.fixture()
def reminder_repo() -> InMemoryReminderRepository:
    return InMemoryReminderRepository()


@pytest.fixture()
def sequence_repo() -> InMemorySequenceRepository:
    return InMemorySequenceRepository()


@pytest.fixture()
def execution_repo() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


@pytest.fixture()
def contacts() -> InMemoryContactLookup:
    return InMemoryContactLookup()


@pytest.fixture()
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture()
def appointment_service(appointment_repo, reminder_repo, contacts, clock) -> AppointmentService:
    return AppointmentService(
        appointments=appointment_repo,
        reminder_scheduler=ReminderScheduler(reminder_repo, clock),
        contacts=contacts,
        clock=clock,
    )


@pytest.fixture()
def engine(sequence_repo, execution_repo, contacts, dispatcher, clock) -> SequenceEngine:
    return SequenceEngine(
        sequences=sequence_repo,
        executions=execution_repo,
        contacts=contacts,
        dispatcher=dispatcher,
        clock=clock,
    )
