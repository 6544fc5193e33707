"""Wires SQL repositories into the services for one database session."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from rivor.automation.catalog import TemplateCatalog
from rivor.automation.dispatch import ActionDispatcher, EventActionDispatcher
from rivor.automation.engine import SequenceEngine
from rivor.clock import Clock, utcnow
from rivor.repositories.sql import (
    SqlAppointmentRepository,
    SqlContactLookup,
    SqlExecutionRepository,
    SqlReminderRepository,
    SqlSequenceRepository,
)
from rivor.scheduling.reminders import ReminderScheduler
from rivor.scheduling.service import AppointmentService


def build_appointment_service(db: AsyncSession, clock: Clock = utcnow) -> AppointmentService:
    return AppointmentService(
        appointments=SqlAppointmentRepository(db),
        reminder_scheduler=ReminderScheduler(SqlReminderRepository(db), clock),
        contacts=SqlContactLookup(db),
        clock=clock,
    )


def build_sequence_engine(
    db: AsyncSession,
    clock: Clock = utcnow,
    dispatcher: ActionDispatcher | None = None,
    catalog: TemplateCatalog | None = None,
) -> SequenceEngine:
    return SequenceEngine(
        sequences=SqlSequenceRepository(db),
        executions=SqlExecutionRepository(db),
        contacts=SqlContactLookup(db),
        dispatcher=dispatcher or EventActionDispatcher(),
        catalog=catalog,
        clock=clock,
    )
