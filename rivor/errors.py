"""Caller-visible error taxonomy for scheduling and follow-up automation.

``LookupFailure`` is internal: lookup implementations raise it, the condition
evaluator and personalization engine catch it and degrade gracefully.
"""

from __future__ import annotations

import uuid
from typing import Any


class AutomationError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(AutomationError):
    """Missing or malformed required fields. Never retried."""


class InvalidTransitionError(ValidationError):
    """Execution status change not allowed from the current status."""

    def __init__(self, current: str, trigger: str) -> None:
        self.current = current
        self.trigger = trigger
        super().__init__(f"Invalid transition: {current} --{trigger}--> ???")


class ConflictError(AutomationError):
    """Request collides with existing state."""


class SlotConflictError(ConflictError):
    """Proposed appointment window overlaps existing appointments."""

    def __init__(self, conflicts: list[Any], suggestions: list[Any]) -> None:
        self.conflicts = conflicts
        self.suggestions = suggestions
        super().__init__(f"Time slot conflict detected ({len(conflicts)} overlapping)")


class DuplicateExecutionError(ConflictError):
    """An active execution already exists for the same sequence and target."""

    def __init__(self, execution_id: uuid.UUID) -> None:
        self.execution_id = execution_id
        super().__init__(f"Follow-up sequence already active for this contact/lead ({execution_id})")


class NotFoundError(AutomationError):
    """Referenced entity is absent or not owned by the caller's organization."""

    def __init__(self, entity: str, entity_id: Any = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        suffix = f" {entity_id}" if entity_id is not None else ""
        super().__init__(f"{entity}{suffix} not found")


class LookupFailure(AutomationError):
    """A contact/lead lookup failed (transient store error, decode error, ...)."""
