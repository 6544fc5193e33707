"""Execution state definitions and transition map.

``active → completed`` is driven by ticks reaching the last step;
``active ⇄ paused`` is driven by explicit pause/resume calls.
"""

from __future__ import annotations

from rivor.errors import InvalidTransitionError
from rivor.models.enums import ExecutionStatus

# Transition map: {current_status: {trigger_name: next_status}}
TRANSITIONS: dict[ExecutionStatus, dict[str, ExecutionStatus]] = {
    ExecutionStatus.ACTIVE: {
        "pause": ExecutionStatus.PAUSED,
        "complete": ExecutionStatus.COMPLETED,
    },
    ExecutionStatus.PAUSED: {
        "resume": ExecutionStatus.ACTIVE,
    },
    ExecutionStatus.COMPLETED: {},
}


def can_transition(current: ExecutionStatus, trigger: str) -> bool:
    """Check if a trigger is valid from the current status."""
    return trigger in TRANSITIONS.get(current, {})


def next_status(current: ExecutionStatus, trigger: str) -> ExecutionStatus:
    """Resolve the status a trigger leads to.

    Raises:
        InvalidTransitionError: If the trigger is not valid from ``current``.
    """
    state_transitions = TRANSITIONS.get(current, {})
    if trigger not in state_transitions:
        raise InvalidTransitionError(current.value, trigger)
    return state_transitions[trigger]
