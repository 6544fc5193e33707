"""SQLAlchemy-backed repositories (PostgreSQL, AsyncSession).

The caller owns the transaction: repositories only ``flush``. Booking is
serialized per organization with a transaction-scoped advisory lock;
duplicate active executions are rejected by a partial unique index.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rivor.errors import LookupFailure
from rivor.models.appointment import Appointment
from rivor.models.contact import Contact, Lead
from rivor.models.enums import BLOCKING_STATUSES, ExecutionStatus
from rivor.models.execution import FollowUpExecution
from rivor.models.reminder import ReminderWorkItem
from rivor.models.sequence import FollowUpSequence
from rivor.schemas.appointments import AppointmentFilters
from rivor.schemas.context import ContactSnapshot, LeadSnapshot

logger = logging.getLogger(__name__)


def _advisory_key(namespace: str, org_id: uuid.UUID) -> int:
    """Signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.sha256(f"{namespace}:{org_id}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class SqlAppointmentRepository:
    """Appointments table access."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_overlapping(
        self,
        org_id: uuid.UUID,
        start: datetime,
        end: datetime,
        property_address: str | None = None,
    ) -> list[Appointment]:
        stmt = select(Appointment).where(
            Appointment.organization_id == org_id,
            Appointment.status.in_([s.value for s in BLOCKING_STATUSES]),
            Appointment.scheduled_at < end,
            Appointment.ends_at > start,
        )
        if property_address:
            stmt = stmt.where(Appointment.property_address == property_address)
        result = await self._db.execute(stmt.order_by(Appointment.scheduled_at.asc()))
        return list(result.scalars().all())

    async def create_if_no_conflict(self, appointment: Appointment) -> list[Appointment]:
        # Held until the surrounding transaction commits or rolls back
        await self._db.execute(
            select(func.pg_advisory_xact_lock(_advisory_key("appointments", appointment.organization_id)))
        )
        conflicts = await self.find_overlapping(
            appointment.organization_id,
            appointment.scheduled_at,
            appointment.ends_at,
            appointment.property_address,
        )
        if conflicts:
            return conflicts

        self._db.add(appointment)
        await self._db.flush()
        return []

    async def get(self, org_id: uuid.UUID, appointment_id: uuid.UUID) -> Appointment | None:
        result = await self._db.execute(
            select(Appointment).where(
                Appointment.id == appointment_id,
                Appointment.organization_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, appointment: Appointment) -> None:
        await self._db.flush()

    async def list(self, org_id: uuid.UUID, filters: AppointmentFilters) -> list[Appointment]:
        stmt = select(Appointment).where(Appointment.organization_id == org_id)
        if filters.status is not None:
            stmt = stmt.where(Appointment.status == filters.status.value)
        if filters.appointment_type is not None:
            stmt = stmt.where(Appointment.appointment_type == filters.appointment_type.value)
        if filters.contact_id is not None:
            stmt = stmt.where(Appointment.contact_id == filters.contact_id)
        if filters.start_date is not None:
            stmt = stmt.where(Appointment.scheduled_at >= filters.start_date)
        if filters.end_date is not None:
            stmt = stmt.where(Appointment.scheduled_at <= filters.end_date)

        result = await self._db.execute(
            stmt.order_by(Appointment.scheduled_at.asc()).limit(filters.limit)
        )
        return list(result.scalars().all())


class SqlReminderRepository:
    """Reminder work items table access."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def add_many(self, items: list[ReminderWorkItem]) -> None:
        if not items:
            return
        # Savepoint; the appointment insert survives a failure here
        async with self._db.begin_nested():
            self._db.add_all(items)
            await self._db.flush()

    async def list_for_appointment(self, appointment_id: uuid.UUID) -> list[ReminderWorkItem]:
        result = await self._db.execute(
            select(ReminderWorkItem)
            .where(ReminderWorkItem.appointment_id == appointment_id)
            .order_by(ReminderWorkItem.trigger_at.asc())
        )
        return list(result.scalars().all())


class SqlSequenceRepository:
    """Follow-up sequences table access."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def add(self, sequence: FollowUpSequence) -> FollowUpSequence:
        self._db.add(sequence)
        await self._db.flush()
        return sequence

    async def get(self, org_id: uuid.UUID, sequence_id: uuid.UUID) -> FollowUpSequence | None:
        result = await self._db.execute(
            select(FollowUpSequence).where(
                FollowUpSequence.id == sequence_id,
                FollowUpSequence.organization_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active(self, org_id: uuid.UUID, sequence_id: uuid.UUID) -> FollowUpSequence | None:
        result = await self._db.execute(
            select(FollowUpSequence).where(
                FollowUpSequence.id == sequence_id,
                FollowUpSequence.organization_id == org_id,
                FollowUpSequence.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_active_for_event(self, org_id: uuid.UUID, trigger_event: str) -> list[FollowUpSequence]:
        result = await self._db.execute(
            select(FollowUpSequence)
            .where(
                FollowUpSequence.organization_id == org_id,
                FollowUpSequence.trigger_event == trigger_event,
                FollowUpSequence.is_active.is_(True),
            )
            .order_by(FollowUpSequence.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_all(self, org_id: uuid.UUID) -> list[FollowUpSequence]:
        result = await self._db.execute(
            select(FollowUpSequence)
            .where(FollowUpSequence.organization_id == org_id)
            .order_by(FollowUpSequence.created_at.desc())
        )
        return list(result.scalars().all())


class SqlExecutionRepository:
    """Follow-up executions table access."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _find_active(self, execution: FollowUpExecution) -> FollowUpExecution | None:
        result = await self._db.execute(
            select(FollowUpExecution).where(
                FollowUpExecution.organization_id == execution.organization_id,
                FollowUpExecution.sequence_id == execution.sequence_id,
                FollowUpExecution.target_key == execution.target_key,
                FollowUpExecution.status == ExecutionStatus.ACTIVE.value,
            )
        )
        return result.scalars().first()

    async def create_if_absent(self, execution: FollowUpExecution) -> tuple[FollowUpExecution, bool]:
        existing = await self._find_active(execution)
        if existing is not None:
            return existing, False

        try:
            async with self._db.begin_nested():
                self._db.add(execution)
                await self._db.flush()
        except IntegrityError:
            # Lost the race against a concurrent start
            existing = await self._find_active(execution)
            if existing is None:
                raise
            logger.info(
                "Concurrent start rejected by unique index (surviving execution=%s)",
                existing.id,
            )
            return existing, False
        return execution, True

    async def get(self, execution_id: uuid.UUID) -> FollowUpExecution | None:
        result = await self._db.execute(
            select(FollowUpExecution).where(FollowUpExecution.id == execution_id)
        )
        return result.scalar_one_or_none()

    async def get_for_org(self, org_id: uuid.UUID, execution_id: uuid.UUID) -> FollowUpExecution | None:
        result = await self._db.execute(
            select(FollowUpExecution).where(
                FollowUpExecution.id == execution_id,
                FollowUpExecution.organization_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, execution: FollowUpExecution) -> None:
        await self._db.flush()

    async def claim_due(self, now: datetime, limit: int) -> list[FollowUpExecution]:
        # Rows locked by another poller are skipped, never double-claimed
        result = await self._db.execute(
            select(FollowUpExecution)
            .where(
                FollowUpExecution.status == ExecutionStatus.ACTIVE.value,
                FollowUpExecution.next_action_at.isnot(None),
                FollowUpExecution.next_action_at <= now,
            )
            .order_by(FollowUpExecution.next_action_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    @contextlib.asynccontextmanager
    async def isolated(self) -> AsyncIterator[None]:
        async with self._db.begin_nested():
            yield

    async def list(
        self,
        org_id: uuid.UUID,
        status: str | None = None,
        contact_id: uuid.UUID | None = None,
        limit: int = 50,
    ) -> list[FollowUpExecution]:
        stmt = select(FollowUpExecution).where(FollowUpExecution.organization_id == org_id)
        if status:
            stmt = stmt.where(FollowUpExecution.status == status)
        if contact_id is not None:
            stmt = stmt.where(FollowUpExecution.contact_id == contact_id)
        result = await self._db.execute(
            stmt.order_by(FollowUpExecution.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_sequence(self, org_id: uuid.UUID) -> dict[uuid.UUID, int]:
        result = await self._db.execute(
            select(FollowUpExecution.sequence_id, func.count(FollowUpExecution.id))
            .where(FollowUpExecution.organization_id == org_id)
            .group_by(FollowUpExecution.sequence_id)
        )
        return {sequence_id: count for sequence_id, count in result.all()}


class SqlContactLookup:
    """Organization-scoped contact/lead reads."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_contact(self, org_id: uuid.UUID, contact_id: uuid.UUID) -> ContactSnapshot | None:
        try:
            result = await self._db.execute(
                select(Contact).where(Contact.id == contact_id, Contact.organization_id == org_id)
            )
            contact = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise LookupFailure(f"Contact lookup failed for {contact_id}") from exc
        if contact is None:
            return None
        return ContactSnapshot(id=contact.id, display_name=contact.display_name, tags=list(contact.tags or []))

    async def get_lead(self, org_id: uuid.UUID, lead_id: uuid.UUID) -> LeadSnapshot | None:
        try:
            result = await self._db.execute(
                select(Lead).where(Lead.id == lead_id, Lead.organization_id == org_id)
            )
            lead = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise LookupFailure(f"Lead lookup failed for {lead_id}") from exc
        if lead is None:
            return None
        return LeadSnapshot(
            id=lead.id,
            title=lead.title,
            stage=lead.stage,
            property_value=lead.property_value,
        )
