"""Pydantic schemas for follow-up sequences, executions, and due actions."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rivor.models.enums import StepAction


class StepDefinition(BaseModel):
    """A step as submitted by a caller.

    ``delay``, ``action`` and ``content`` are optional here so a missing one
    is reported as a domain ValidationError naming the step.
    """

    delay: str | None = None  # e.g. "1 hour", "2 days", "1 week"
    action: StepAction | None = None
    content: str | None = None
    subject: str | None = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    ai_personalization: bool = True


class SequenceDefinition(BaseModel):
    """CreateSequence request."""

    name: str | None = None
    description: str | None = None
    sequence_type: str | None = None
    trigger_event: str | None = None
    steps: list[StepDefinition] | None = None
    conditions: dict[str, Any] = Field(default_factory=dict)


class SequenceStep(BaseModel):
    """A validated step as stored on the sequence."""

    step_number: int
    delay: str
    delay_minutes: int
    action: StepAction
    content: str
    subject: str | None = None
    conditions: dict[str, Any] = Field(default_factory=dict)
    ai_personalization: bool = True


class ExecutionTarget(BaseModel):
    """The contact and/or lead (and optionally thread) an execution is for."""

    contact_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    email_thread_id: str | None = None


class PersonalizedStep(BaseModel):
    """Cached, personalized content for one step."""

    step_number: int
    subject: str | None = None
    original_content: str
    personalized_content: str


class DueAction(BaseModel):
    """A step that became due, handed to the action dispatcher."""

    model_config = {"frozen": True}

    org_id: uuid.UUID
    execution_id: uuid.UUID
    sequence_id: uuid.UUID
    step_number: int
    action: StepAction
    subject: str | None = None
    content: str
    contact_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    email_thread_id: str | None = None


class SequenceRead(BaseModel):
    """Sequence as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    sequence_type: str
    trigger_event: str | None = None
    steps: list[SequenceStep]
    conditions: dict[str, Any] = Field(default_factory=dict)
    is_active: bool


class SequenceListItem(BaseModel):
    """Sequence row in a listing."""

    id: uuid.UUID
    name: str
    sequence_type: str
    trigger_event: str | None = None
    is_active: bool
    step_count: int
    execution_count: int


class ExecutionRead(BaseModel):
    """Execution as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sequence_id: uuid.UUID
    contact_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    email_thread_id: str | None = None
    status: str
    next_action_at: datetime | None = None
    completed_steps: list[int] = Field(default_factory=list)
    paused_at: datetime | None = None
    completed_at: datetime | None = None


class ExecutionSummary(BaseModel):
    """Status counts over an execution listing."""

    active: int = 0
    completed: int = 0
    paused: int = 0


class ExecutionListing(BaseModel):
    """ListExecutions response."""

    executions: list[ExecutionRead]
    summary: ExecutionSummary


class StartExecutionRequest(ExecutionTarget):
    """StartExecution request body."""

    sequence_id: uuid.UUID
    customizations: dict[str, Any] = Field(default_factory=dict)


class TriggerFollowUpRequest(ExecutionTarget):
    """TriggerSmartFollowUp request body."""

    trigger_event: str = Field(min_length=1)
    customizations: dict[str, Any] = Field(default_factory=dict)
