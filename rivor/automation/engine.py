"""Sequence engine: runs follow-up sequences step by step.

All timing lives in ``FollowUpExecution.next_action_at``; nothing here
sleeps. An external trigger (``rivor.worker.FollowUpPoller``) calls
``run_due`` and the engine dispatches whatever became due.

Flow per execution:
    start            -> active, next_action_at = now + step[1].delay
    tick (due)       -> dispatch step, record it, schedule the next one
    tick (last step) -> completed
    pause / resume   -> active <-> paused
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from rivor.automation.catalog import SequenceTemplate, TemplateCatalog, default_catalog
from rivor.automation.conditions import ConditionEvaluator, EvaluationContext
from rivor.automation.delays import parse_delay
from rivor.automation.dispatch import ActionDispatcher
from rivor.automation.personalization import PersonalizationEngine
from rivor.automation.states import next_status
from rivor.clock import Clock, utcnow
from rivor.errors import DuplicateExecutionError, NotFoundError, ValidationError
from rivor.events.bus import emit
from rivor.models.enums import ExecutionStatus
from rivor.models.execution import FollowUpExecution, make_target_key
from rivor.models.sequence import FollowUpSequence
from rivor.repositories.base import ContactLookup, ExecutionRepository, SequenceRepository
from rivor.schemas.events import EventType, SystemEvent
from rivor.schemas.sequences import (
    DueAction,
    ExecutionListing,
    ExecutionRead,
    ExecutionSummary,
    ExecutionTarget,
    SequenceDefinition,
    SequenceListItem,
    SequenceStep,
)

logger = logging.getLogger(__name__)

SMART_SEQUENCE_TYPE = "smart_generated"
SMART_CREATOR = "ai_system"


@dataclass
class RunResult:
    """Outcome of one ``run_due`` batch."""

    claimed: int = 0
    executed: int = 0
    failed: int = 0


class SequenceEngine:
    """Creates sequences and drives their executions."""

    def __init__(
        self,
        sequences: SequenceRepository,
        executions: ExecutionRepository,
        contacts: ContactLookup,
        dispatcher: ActionDispatcher,
        catalog: TemplateCatalog | None = None,
        clock: Clock = utcnow,
        evaluator: ConditionEvaluator | None = None,
        personalizer: PersonalizationEngine | None = None,
    ) -> None:
        self._sequences = sequences
        self._executions = executions
        self._dispatcher = dispatcher
        self._catalog = catalog or default_catalog()
        self._clock = clock
        self._evaluator = evaluator or ConditionEvaluator(contacts, clock)
        self._personalizer = personalizer or PersonalizationEngine(contacts)

    # ── Sequences ────────────────────────────────────────────────────

    async def create_sequence(
        self,
        org_id: uuid.UUID,
        definition: SequenceDefinition,
        created_by: str | None = None,
    ) -> FollowUpSequence:
        """Validate and store a sequence.

        Raises:
            ValidationError: name, type or steps missing, or a step lacks
                delay/action/content.
        """
        if not definition.name or not definition.sequence_type or not definition.steps:
            raise ValidationError("Name, sequence type, and steps array required")

        steps: list[SequenceStep] = []
        for number, step in enumerate(definition.steps, start=1):
            if not step.delay or step.action is None or not step.content:
                raise ValidationError(f"Step {number} is missing required fields (delay, action, content)")
            steps.append(SequenceStep(
                step_number=number,
                delay=step.delay,
                delay_minutes=parse_delay(step.delay),
                action=step.action,
                content=step.content,
                subject=step.subject,
                conditions=step.conditions,
                ai_personalization=step.ai_personalization,
            ))

        sequence = FollowUpSequence(
            organization_id=org_id,
            name=definition.name,
            description=definition.description,
            sequence_type=definition.sequence_type,
            trigger_event=definition.trigger_event,
            steps=[s.model_dump(mode="json") for s in steps],
            conditions=dict(definition.conditions),
            is_active=True,
            created_by=created_by,
        )
        return await self._store_sequence(sequence, created_by)

    async def _synthesize(
        self,
        org_id: uuid.UUID,
        trigger_event: str,
        template: SequenceTemplate,
    ) -> FollowUpSequence:
        steps = [
            SequenceStep(
                step_number=number,
                delay=step.delay,
                delay_minutes=parse_delay(step.delay),
                action=step.action,
                content=step.content,
                subject=step.subject,
                ai_personalization=True,
            )
            for number, step in enumerate(template.steps, start=1)
        ]
        sequence = FollowUpSequence(
            organization_id=org_id,
            name=f"{template.name} (Auto-generated)",
            description=f"Automatically generated sequence for {trigger_event}",
            sequence_type=SMART_SEQUENCE_TYPE,
            trigger_event=trigger_event,
            steps=[s.model_dump(mode="json") for s in steps],
            conditions={},
            is_active=True,
            created_by=SMART_CREATOR,
        )
        return await self._store_sequence(sequence, SMART_CREATOR)

    async def _store_sequence(self, sequence: FollowUpSequence, actor: str | None) -> FollowUpSequence:
        sequence = await self._sequences.add(sequence)
        logger.info(
            "Sequence created: id=%s name=%r steps=%d trigger=%s",
            sequence.id,
            sequence.name,
            len(sequence.steps),
            sequence.trigger_event,
        )
        await emit(SystemEvent(
            event_type=EventType.SEQUENCE_CREATED,
            org_id=sequence.organization_id,
            entity_id=sequence.id,
            actor_id=actor,
            data={
                "name": sequence.name,
                "sequence_type": sequence.sequence_type,
                "trigger_event": sequence.trigger_event,
                "step_count": len(sequence.steps),
            },
            source_module="automation.engine",
        ))
        return sequence

    async def list_sequences(self, org_id: uuid.UUID) -> list[SequenceListItem]:
        """All sequences, newest first, with step and execution counts."""
        sequences = await self._sequences.list_all(org_id)
        counts = await self._executions.count_by_sequence(org_id)
        return [
            SequenceListItem(
                id=s.id,
                name=s.name,
                sequence_type=s.sequence_type,
                trigger_event=s.trigger_event,
                is_active=bool(s.is_active),
                step_count=len(s.steps or []),
                execution_count=counts.get(s.id, 0),
            )
            for s in sequences
        ]

    # ── Starting executions ──────────────────────────────────────────

    async def start(
        self,
        org_id: uuid.UUID,
        sequence_id: uuid.UUID,
        target: ExecutionTarget,
        customizations: dict[str, Any] | None = None,
    ) -> FollowUpExecution:
        """Start a sequence for a target.

        Raises:
            NotFoundError: sequence missing, inactive, or owned by another org.
            DuplicateExecutionError: an active execution already exists for
                this (sequence, target).
        """
        sequence = await self._sequences.get_active(org_id, sequence_id)
        if sequence is None:
            raise NotFoundError("Sequence", sequence_id)

        steps = _load_steps(sequence)
        now = self._clock()
        first_delay = steps[0].delay_minutes if steps else 0
        customizations = dict(customizations or {})

        execution = FollowUpExecution(
            organization_id=org_id,
            sequence_id=sequence.id,
            contact_id=target.contact_id,
            lead_id=target.lead_id,
            email_thread_id=target.email_thread_id,
            target_key=make_target_key(target.contact_id, target.lead_id),
            status=ExecutionStatus.ACTIVE.value,
            next_action_at=now + timedelta(minutes=first_delay),
            completed_steps=[],
            customizations=customizations,
            personalized_steps=[],
        )
        execution, created = await self._executions.create_if_absent(execution)
        if not created:
            logger.info(
                "Duplicate start rejected: sequence=%s target=%s existing=%s",
                sequence.id,
                execution.target_key,
                execution.id,
            )
            raise DuplicateExecutionError(execution.id)

        await self._cache_personalized_steps(execution, steps, customizations)

        logger.info(
            "Execution started: id=%s sequence=%r next_action_at=%s",
            execution.id,
            sequence.name,
            execution.next_action_at.isoformat(),
        )
        await emit(SystemEvent(
            event_type=EventType.EXECUTION_STARTED,
            org_id=org_id,
            entity_id=execution.id,
            data={
                "sequence_id": str(sequence.id),
                "sequence_name": sequence.name,
                "contact_id": str(target.contact_id) if target.contact_id else None,
                "lead_id": str(target.lead_id) if target.lead_id else None,
                "next_action_at": execution.next_action_at.isoformat(),
                "total_steps": len(steps),
            },
            source_module="automation.engine",
        ))
        return execution

    async def _cache_personalized_steps(
        self,
        execution: FollowUpExecution,
        steps: list[SequenceStep],
        customizations: dict[str, Any],
    ) -> None:
        """Personalize every flagged step up front. Failure leaves the cache empty."""
        try:
            personalized = await self._personalizer.personalize_steps(
                execution.organization_id,
                execution.contact_id,
                execution.lead_id,
                steps,
                customizations,
            )
            execution.personalized_steps = [p.model_dump() for p in personalized]
            execution.personalized_at = self._clock()
            await self._executions.save(execution)
        except Exception:
            logger.exception("Personalized content generation failed for execution %s", execution.id)

    async def trigger_smart(
        self,
        org_id: uuid.UUID,
        trigger_event: str,
        target: ExecutionTarget,
        customizations: dict[str, Any] | None = None,
    ) -> FollowUpExecution:
        """Start the best sequence for an event, synthesizing one if none exist.

        Candidates are evaluated oldest first; the first whose conditions
        match wins. When none match, the first candidate is used anyway.

        Raises:
            NotFoundError: no sequence exists for the event and the catalog
                has no template for it.
            DuplicateExecutionError: the chosen sequence is already active
                for the target.
        """
        candidates = await self._sequences.list_active_for_event(org_id, trigger_event)

        if not candidates:
            template = self._catalog.get(trigger_event)
            if template is None:
                raise NotFoundError("Default sequence for trigger event", trigger_event)
            sequence = await self._synthesize(org_id, trigger_event, template)
            return await self.start(org_id, sequence.id, target, customizations)

        context = EvaluationContext(
            org_id=org_id,
            contact_id=target.contact_id,
            lead_id=target.lead_id,
            email_thread_id=target.email_thread_id,
        )
        chosen: FollowUpSequence | None = None
        for sequence in candidates:
            if await self._evaluator.evaluate(sequence.conditions, context):
                chosen = sequence
                break

        if chosen is None:
            chosen = candidates[0]
            logger.warning(
                "No sequence conditions matched for event %r (org=%s, %d candidates); "
                "falling back to first candidate %s",
                trigger_event,
                org_id,
                len(candidates),
                chosen.id,
            )

        return await self.start(org_id, chosen.id, target, customizations)

    # ── Advancing executions ─────────────────────────────────────────

    async def tick(
        self,
        execution_id: uuid.UUID,
        org_id: uuid.UUID | None = None,
    ) -> FollowUpExecution:
        """Advance one due step of an execution.

        A no-op when the execution is not active or its next action is
        still in the future, so repeated calls never re-dispatch a step.
        With ``org_id`` the execution must belong to that organization.

        Raises:
            NotFoundError: the execution does not exist.
        """
        if org_id is not None:
            execution = await self._executions.get_for_org(org_id, execution_id)
        else:
            execution = await self._executions.get(execution_id)
        if execution is None:
            raise NotFoundError("Execution", execution_id)
        await self._advance(execution)
        return execution

    async def run_due(self, limit: int = 50) -> RunResult:
        """Claim due executions and tick each; failures are isolated per execution."""
        now = self._clock()
        due = await self._executions.claim_due(now, limit)
        result = RunResult(claimed=len(due))

        for execution in due:
            try:
                async with self._executions.isolated():
                    advanced = await self._advance(execution)
            except Exception:
                result.failed += 1
                logger.exception("Tick failed for execution %s", execution.id)
                continue
            if advanced:
                result.executed += 1

        if due:
            logger.info(
                "Run due: claimed=%d executed=%d failed=%d",
                result.claimed,
                result.executed,
                result.failed,
            )
        return result

    async def _advance(self, execution: FollowUpExecution) -> bool:
        """Dispatch the current step if due. Returns True if something changed."""
        if execution.status != ExecutionStatus.ACTIVE.value:
            return False
        now = self._clock()
        if execution.next_action_at is None or now < execution.next_action_at:
            return False

        sequence = await self._sequences.get(execution.organization_id, execution.sequence_id)
        if sequence is None:
            raise NotFoundError("Sequence", execution.sequence_id)

        done = set(execution.completed_steps or [])
        remaining = [s for s in _load_steps(sequence) if s.step_number not in done]
        if not remaining:
            await self._complete(execution)
            return True

        step = remaining[0]
        cached = _cached_step(execution, step.step_number)
        await self._dispatcher.dispatch(DueAction(
            org_id=execution.organization_id,
            execution_id=execution.id,
            sequence_id=execution.sequence_id,
            step_number=step.step_number,
            action=step.action,
            subject=cached.get("subject", step.subject) if cached else step.subject,
            content=cached["personalized_content"] if cached else step.content,
            contact_id=execution.contact_id,
            lead_id=execution.lead_id,
            email_thread_id=execution.email_thread_id,
        ))

        execution.completed_steps = [*(execution.completed_steps or []), step.step_number]
        upcoming = remaining[1:]
        next_at = now + timedelta(minutes=upcoming[0].delay_minutes) if upcoming else None

        logger.info(
            "Step %d/%d done for execution %s",
            step.step_number,
            len(done) + len(remaining),
            execution.id,
        )
        await emit(SystemEvent(
            event_type=EventType.EXECUTION_STEP_COMPLETED,
            org_id=execution.organization_id,
            entity_id=execution.id,
            data={
                "step_number": step.step_number,
                "action": step.action.value,
                "next_action_at": next_at.isoformat() if next_at else None,
            },
            source_module="automation.engine",
        ))

        if next_at is None:
            await self._complete(execution)
        else:
            execution.next_action_at = next_at
            await self._executions.save(execution)
        return True

    async def _complete(self, execution: FollowUpExecution) -> None:
        status = next_status(ExecutionStatus(execution.status), "complete")
        execution.status = status.value
        execution.completed_at = self._clock()
        execution.next_action_at = None
        await self._executions.save(execution)

        logger.info("Execution completed: id=%s", execution.id)
        await emit(SystemEvent(
            event_type=EventType.EXECUTION_COMPLETED,
            org_id=execution.organization_id,
            entity_id=execution.id,
            data={"completed_steps": list(execution.completed_steps or [])},
            source_module="automation.engine",
        ))

    # ── Pause / resume ───────────────────────────────────────────────

    async def pause(self, org_id: uuid.UUID, execution_id: uuid.UUID) -> FollowUpExecution:
        """Raises InvalidTransitionError unless the execution is active."""
        execution = await self._get_for_org(org_id, execution_id)
        execution.status = next_status(ExecutionStatus(execution.status), "pause").value
        execution.paused_at = self._clock()
        await self._executions.save(execution)

        logger.info("Execution paused: id=%s", execution.id)
        await emit(SystemEvent(
            event_type=EventType.EXECUTION_PAUSED,
            org_id=org_id,
            entity_id=execution.id,
            source_module="automation.engine",
        ))
        return execution

    async def resume(self, org_id: uuid.UUID, execution_id: uuid.UUID) -> FollowUpExecution:
        """Raises InvalidTransitionError unless the execution is paused.

        A next action that fell due while paused runs on the next tick.
        """
        execution = await self._get_for_org(org_id, execution_id)
        execution.status = next_status(ExecutionStatus(execution.status), "resume").value
        execution.paused_at = None
        await self._executions.save(execution)

        logger.info("Execution resumed: id=%s", execution.id)
        await emit(SystemEvent(
            event_type=EventType.EXECUTION_RESUMED,
            org_id=org_id,
            entity_id=execution.id,
            source_module="automation.engine",
        ))
        return execution

    async def _get_for_org(self, org_id: uuid.UUID, execution_id: uuid.UUID) -> FollowUpExecution:
        execution = await self._executions.get_for_org(org_id, execution_id)
        if execution is None:
            raise NotFoundError("Execution", execution_id)
        return execution

    # ── Listing ──────────────────────────────────────────────────────

    async def list_executions(
        self,
        org_id: uuid.UUID,
        status: ExecutionStatus | None = None,
        contact_id: uuid.UUID | None = None,
        limit: int = 50,
    ) -> ExecutionListing:
        executions = await self._executions.list(
            org_id,
            status=status.value if status else None,
            contact_id=contact_id,
            limit=limit,
        )
        counts = Counter(e.status for e in executions)
        return ExecutionListing(
            executions=[ExecutionRead.model_validate(e) for e in executions],
            summary=ExecutionSummary(
                active=counts[ExecutionStatus.ACTIVE.value],
                completed=counts[ExecutionStatus.COMPLETED.value],
                paused=counts[ExecutionStatus.PAUSED.value],
            ),
        )


def _load_steps(sequence: FollowUpSequence) -> list[SequenceStep]:
    steps = [SequenceStep.model_validate(s) for s in sequence.steps or []]
    return sorted(steps, key=lambda s: s.step_number)


def _cached_step(execution: FollowUpExecution, step_number: int) -> dict[str, Any] | None:
    for entry in execution.personalized_steps or []:
        if entry.get("step_number") == step_number:
            return entry
    return None
