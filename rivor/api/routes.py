"""Assistant API: appointments and follow-up automation.

Thin adapter over AppointmentService and SequenceEngine. Domain errors are
translated to HTTP by ``rivor.api.errors``.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query

from rivor.api.deps import get_actor, get_appointment_service, get_org_id, get_sequence_engine
from rivor.automation.engine import SequenceEngine
from rivor.config import settings
from rivor.models.enums import AppointmentStatus, AppointmentType, ExecutionStatus
from rivor.scheduling.service import AppointmentService
from rivor.schemas.appointments import (
    AppointmentCreate,
    AppointmentCreated,
    AppointmentFilters,
    AppointmentListing,
    AppointmentRead,
    AppointmentUpdate,
)
from rivor.schemas.sequences import (
    ExecutionListing,
    ExecutionRead,
    ExecutionTarget,
    SequenceDefinition,
    SequenceRead,
    StartExecutionRequest,
    TriggerFollowUpRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant", tags=["assistant"])


# ── Appointments ─────────────────────────────────────────────────────


@router.post("/appointments", status_code=201, response_model=AppointmentCreated)
async def create_appointment(
    body: AppointmentCreate,
    org_id: uuid.UUID = Depends(get_org_id),
    actor: str | None = Depends(get_actor),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentCreated:
    return await service.create(org_id, body, created_by=actor)


@router.get("/appointments", response_model=AppointmentListing)
async def list_appointments(
    status: AppointmentStatus | None = None,
    appointment_type: AppointmentType | None = Query(default=None, alias="type"),
    contact_id: uuid.UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(default=settings.scheduling.list_limit, gt=0, le=500),
    org_id: uuid.UUID = Depends(get_org_id),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentListing:
    filters = AppointmentFilters(
        status=status,
        appointment_type=appointment_type,
        contact_id=contact_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return await service.list(org_id, filters)


@router.patch("/appointments/{appointment_id}", response_model=AppointmentRead)
async def update_appointment(
    appointment_id: uuid.UUID,
    body: AppointmentUpdate,
    org_id: uuid.UUID = Depends(get_org_id),
    service: AppointmentService = Depends(get_appointment_service),
) -> AppointmentRead:
    appointment = await service.update(org_id, appointment_id, body)
    return AppointmentRead.model_validate(appointment)


# ── Sequences ────────────────────────────────────────────────────────


@router.post("/followup/sequences", status_code=201, response_model=SequenceRead)
async def create_sequence(
    body: SequenceDefinition,
    org_id: uuid.UUID = Depends(get_org_id),
    actor: str | None = Depends(get_actor),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> SequenceRead:
    sequence = await engine.create_sequence(org_id, body, created_by=actor)
    return SequenceRead.model_validate(sequence)


@router.get("/followup/sequences")
async def list_sequences(
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> dict[str, Any]:
    items = await engine.list_sequences(org_id)
    return {"sequences": [item.model_dump(mode="json") for item in items]}


# ── Executions ───────────────────────────────────────────────────────


@router.post("/followup/executions", status_code=201, response_model=ExecutionRead)
async def start_execution(
    body: StartExecutionRequest,
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> ExecutionRead:
    target = ExecutionTarget(
        contact_id=body.contact_id,
        lead_id=body.lead_id,
        email_thread_id=body.email_thread_id,
    )
    execution = await engine.start(org_id, body.sequence_id, target, body.customizations)
    return ExecutionRead.model_validate(execution)


@router.post("/followup/trigger", status_code=201, response_model=ExecutionRead)
async def trigger_smart_followup(
    body: TriggerFollowUpRequest,
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> ExecutionRead:
    target = ExecutionTarget(
        contact_id=body.contact_id,
        lead_id=body.lead_id,
        email_thread_id=body.email_thread_id,
    )
    execution = await engine.trigger_smart(org_id, body.trigger_event, target, body.customizations)
    return ExecutionRead.model_validate(execution)


@router.get("/followup/executions", response_model=ExecutionListing)
async def list_executions(
    status: ExecutionStatus | None = None,
    contact_id: uuid.UUID | None = None,
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> ExecutionListing:
    return await engine.list_executions(org_id, status=status, contact_id=contact_id)


@router.post("/followup/executions/{execution_id}/pause", response_model=ExecutionRead)
async def pause_execution(
    execution_id: uuid.UUID,
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> ExecutionRead:
    return ExecutionRead.model_validate(await engine.pause(org_id, execution_id))


@router.post("/followup/executions/{execution_id}/resume", response_model=ExecutionRead)
async def resume_execution(
    execution_id: uuid.UUID,
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> ExecutionRead:
    return ExecutionRead.model_validate(await engine.resume(org_id, execution_id))


@router.post("/followup/executions/{execution_id}/tick", response_model=ExecutionRead)
async def tick_execution(
    execution_id: uuid.UUID,
    org_id: uuid.UUID = Depends(get_org_id),
    engine: SequenceEngine = Depends(get_sequence_engine),
) -> ExecutionRead:
    return ExecutionRead.model_validate(await engine.tick(execution_id, org_id=org_id))
