"""In-memory repositories for tests and single-process runs.

Each repository serializes its check-then-create paths with an
``asyncio.Lock``. ORM column defaults only fire on flush, so ids and
timestamps are assigned here on insert.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections import Counter
from collections.abc import AsyncIterator
from datetime import UTC, datetime

from rivor.models.appointment import Appointment
from rivor.models.enums import BLOCKING_STATUSES, ExecutionStatus
from rivor.models.execution import FollowUpExecution
from rivor.models.reminder import ReminderWorkItem
from rivor.models.sequence import FollowUpSequence
from rivor.schemas.appointments import AppointmentFilters
from rivor.schemas.context import ContactSnapshot, LeadSnapshot


def _stamp(entity) -> None:
    if entity.id is None:
        entity.id = uuid.uuid4()
    now = datetime.now(UTC)
    if entity.created_at is None:
        entity.created_at = now
    entity.updated_at = now


class InMemoryAppointmentRepository:
    def __init__(self) -> None:
        self.items: dict[uuid.UUID, Appointment] = {}
        self._lock = asyncio.Lock()

    async def find_overlapping(
        self,
        org_id: uuid.UUID,
        start: datetime,
        end: datetime,
        property_address: str | None = None,
    ) -> list[Appointment]:
        blocking = {s.value for s in BLOCKING_STATUSES}
        found = [
            a
            for a in self.items.values()
            if a.organization_id == org_id
            and a.status in blocking
            and a.scheduled_at < end
            and a.ends_at > start
            and (not property_address or a.property_address == property_address)
        ]
        return sorted(found, key=lambda a: a.scheduled_at)

    async def create_if_no_conflict(self, appointment: Appointment) -> list[Appointment]:
        async with self._lock:
            conflicts = await self.find_overlapping(
                appointment.organization_id,
                appointment.scheduled_at,
                appointment.ends_at,
                appointment.property_address,
            )
            if conflicts:
                return conflicts
            _stamp(appointment)
            self.items[appointment.id] = appointment
            return []

    async def get(self, org_id: uuid.UUID, appointment_id: uuid.UUID) -> Appointment | None:
        appointment = self.items.get(appointment_id)
        if appointment is None or appointment.organization_id != org_id:
            return None
        return appointment

    async def save(self, appointment: Appointment) -> None:
        appointment.updated_at = datetime.now(UTC)

    async def list(self, org_id: uuid.UUID, filters: AppointmentFilters) -> list[Appointment]:
        def matches(a: Appointment) -> bool:
            if a.organization_id != org_id:
                return False
            if filters.status is not None and a.status != filters.status.value:
                return False
            if filters.appointment_type is not None and a.appointment_type != filters.appointment_type.value:
                return False
            if filters.contact_id is not None and a.contact_id != filters.contact_id:
                return False
            if filters.start_date is not None and a.scheduled_at < filters.start_date:
                return False
            if filters.end_date is not None and a.scheduled_at > filters.end_date:
                return False
            return True

        found = sorted((a for a in self.items.values() if matches(a)), key=lambda a: a.scheduled_at)
        return found[: filters.limit]


class InMemoryReminderRepository:
    def __init__(self) -> None:
        self.items: list[ReminderWorkItem] = []

    async def add_many(self, items: list[ReminderWorkItem]) -> None:
        for item in items:
            _stamp(item)
        self.items.extend(items)

    async def list_for_appointment(self, appointment_id: uuid.UUID) -> list[ReminderWorkItem]:
        found = [r for r in self.items if r.appointment_id == appointment_id]
        return sorted(found, key=lambda r: r.trigger_at)


class InMemorySequenceRepository:
    def __init__(self) -> None:
        self.items: list[FollowUpSequence] = []

    async def add(self, sequence: FollowUpSequence) -> FollowUpSequence:
        _stamp(sequence)
        if sequence.is_active is None:
            sequence.is_active = True
        self.items.append(sequence)
        return sequence

    async def get(self, org_id: uuid.UUID, sequence_id: uuid.UUID) -> FollowUpSequence | None:
        for sequence in self.items:
            if sequence.id == sequence_id and sequence.organization_id == org_id:
                return sequence
        return None

    async def get_active(self, org_id: uuid.UUID, sequence_id: uuid.UUID) -> FollowUpSequence | None:
        sequence = await self.get(org_id, sequence_id)
        if sequence is None or not sequence.is_active:
            return None
        return sequence

    async def list_active_for_event(self, org_id: uuid.UUID, trigger_event: str) -> list[FollowUpSequence]:
        # Insertion order is creation order
        return [
            s
            for s in self.items
            if s.organization_id == org_id and s.trigger_event == trigger_event and s.is_active
        ]

    async def list_all(self, org_id: uuid.UUID) -> list[FollowUpSequence]:
        return [s for s in reversed(self.items) if s.organization_id == org_id]


class InMemoryExecutionRepository:
    def __init__(self) -> None:
        self.items: list[FollowUpExecution] = []
        self._lock = asyncio.Lock()

    async def create_if_absent(self, execution: FollowUpExecution) -> tuple[FollowUpExecution, bool]:
        async with self._lock:
            for existing in self.items:
                if (
                    existing.organization_id == execution.organization_id
                    and existing.sequence_id == execution.sequence_id
                    and existing.target_key == execution.target_key
                    and existing.status == ExecutionStatus.ACTIVE.value
                ):
                    return existing, False
            _stamp(execution)
            self.items.append(execution)
            return execution, True

    async def get(self, execution_id: uuid.UUID) -> FollowUpExecution | None:
        for execution in self.items:
            if execution.id == execution_id:
                return execution
        return None

    async def get_for_org(self, org_id: uuid.UUID, execution_id: uuid.UUID) -> FollowUpExecution | None:
        execution = await self.get(execution_id)
        if execution is None or execution.organization_id != org_id:
            return None
        return execution

    async def save(self, execution: FollowUpExecution) -> None:
        execution.updated_at = datetime.now(UTC)

    async def claim_due(self, now: datetime, limit: int) -> list[FollowUpExecution]:
        due = [
            e
            for e in self.items
            if e.status == ExecutionStatus.ACTIVE.value
            and e.next_action_at is not None
            and e.next_action_at <= now
        ]
        return sorted(due, key=lambda e: e.next_action_at)[:limit]

    @contextlib.asynccontextmanager
    async def isolated(self) -> AsyncIterator[None]:
        yield

    async def list(
        self,
        org_id: uuid.UUID,
        status: str | None = None,
        contact_id: uuid.UUID | None = None,
        limit: int = 50,
    ) -> list[FollowUpExecution]:
        found = [
            e
            for e in reversed(self.items)
            if e.organization_id == org_id
            and (not status or e.status == status)
            and (contact_id is None or e.contact_id == contact_id)
        ]
        return found[:limit]

    async def count_by_sequence(self, org_id: uuid.UUID) -> dict[uuid.UUID, int]:
        return dict(Counter(e.sequence_id for e in self.items if e.organization_id == org_id))


class InMemoryContactLookup:
    """Lookup backed by dicts of snapshots keyed by (org_id, id)."""

    def __init__(self) -> None:
        self.contacts: dict[tuple[uuid.UUID, uuid.UUID], ContactSnapshot] = {}
        self.leads: dict[tuple[uuid.UUID, uuid.UUID], LeadSnapshot] = {}

    def add_contact(self, org_id: uuid.UUID, contact: ContactSnapshot) -> None:
        self.contacts[(org_id, contact.id)] = contact

    def add_lead(self, org_id: uuid.UUID, lead: LeadSnapshot) -> None:
        self.leads[(org_id, lead.id)] = lead

    async def get_contact(self, org_id: uuid.UUID, contact_id: uuid.UUID) -> ContactSnapshot | None:
        return self.contacts.get((org_id, contact_id))

    async def get_lead(self, org_id: uuid.UUID, lead_id: uuid.UUID) -> LeadSnapshot | None:
        return self.leads.get((org_id, lead_id))
