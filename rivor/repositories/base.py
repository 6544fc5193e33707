"""Repository contracts consumed by the scheduling and automation core.

The check-then-create hazards (double booking, duplicate active executions)
are part of the contract: ``create_if_no_conflict`` and ``create_if_absent``
must be atomic in every implementation.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from rivor.models.appointment import Appointment
from rivor.models.execution import FollowUpExecution
from rivor.models.reminder import ReminderWorkItem
from rivor.models.sequence import FollowUpSequence
from rivor.schemas.appointments import AppointmentFilters
from rivor.schemas.context import ContactSnapshot, LeadSnapshot


class AppointmentRepository(Protocol):
    async def find_overlapping(
        self,
        org_id: uuid.UUID,
        start: datetime,
        end: datetime,
        property_address: str | None = None,
    ) -> list[Appointment]:
        """Pending/confirmed appointments whose window intersects [start, end)."""
        ...

    async def create_if_no_conflict(self, appointment: Appointment) -> list[Appointment]:
        """Persist ``appointment`` unless it overlaps; returns the conflicts (empty on success)."""
        ...

    async def get(self, org_id: uuid.UUID, appointment_id: uuid.UUID) -> Appointment | None: ...

    async def save(self, appointment: Appointment) -> None: ...

    async def list(self, org_id: uuid.UUID, filters: AppointmentFilters) -> list[Appointment]:
        """Matching appointments ordered by scheduled start ascending."""
        ...


class ReminderRepository(Protocol):
    async def add_many(self, items: list[ReminderWorkItem]) -> None: ...

    async def list_for_appointment(self, appointment_id: uuid.UUID) -> list[ReminderWorkItem]: ...


class SequenceRepository(Protocol):
    async def add(self, sequence: FollowUpSequence) -> FollowUpSequence: ...

    async def get(self, org_id: uuid.UUID, sequence_id: uuid.UUID) -> FollowUpSequence | None:
        """Any sequence of the organization, active or not."""
        ...

    async def get_active(self, org_id: uuid.UUID, sequence_id: uuid.UUID) -> FollowUpSequence | None: ...

    async def list_active_for_event(self, org_id: uuid.UUID, trigger_event: str) -> list[FollowUpSequence]:
        """Active sequences for the event, oldest first."""
        ...

    async def list_all(self, org_id: uuid.UUID) -> list[FollowUpSequence]:
        """Every sequence of the organization, newest first."""
        ...


class ExecutionRepository(Protocol):
    async def create_if_absent(self, execution: FollowUpExecution) -> tuple[FollowUpExecution, bool]:
        """Persist unless an active execution exists for the same (org, sequence, target).

        Returns ``(execution, True)`` when created, ``(existing, False)`` otherwise.
        """
        ...

    async def get(self, execution_id: uuid.UUID) -> FollowUpExecution | None: ...

    async def get_for_org(self, org_id: uuid.UUID, execution_id: uuid.UUID) -> FollowUpExecution | None: ...

    async def save(self, execution: FollowUpExecution) -> None: ...

    async def claim_due(self, now: datetime, limit: int) -> list[FollowUpExecution]:
        """Active executions with ``next_action_at <= now``, earliest first."""
        ...

    def isolated(self) -> AbstractAsyncContextManager[None]:
        """Scope whose writes roll back alone on error, leaving the batch transaction usable."""
        ...

    async def list(
        self,
        org_id: uuid.UUID,
        status: str | None = None,
        contact_id: uuid.UUID | None = None,
        limit: int = 50,
    ) -> list[FollowUpExecution]: ...

    async def count_by_sequence(self, org_id: uuid.UUID) -> dict[uuid.UUID, int]: ...


class ContactLookup(Protocol):
    """Read-only, organization-scoped lookup. Raises LookupFailure on store errors."""

    async def get_contact(self, org_id: uuid.UUID, contact_id: uuid.UUID) -> ContactSnapshot | None: ...

    async def get_lead(self, org_id: uuid.UUID, lead_id: uuid.UUID) -> LeadSnapshot | None: ...
