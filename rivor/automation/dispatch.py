"""Action dispatch: hands due step actions to outbound delivery.

The engine only decides *that* a step is due; delivery (email, SMS, task
creation) belongs to whichever subscriber consumes the emitted events.
"""

from __future__ import annotations

import logging
from typing import Protocol

from rivor.events.bus import emit
from rivor.models.enums import MESSAGE_ACTIONS
from rivor.schemas.events import EventType, SystemEvent
from rivor.schemas.sequences import DueAction

logger = logging.getLogger(__name__)


class ActionDispatcher(Protocol):
    async def dispatch(self, action: DueAction) -> None: ...


class EventActionDispatcher:
    """Publishes due actions as MESSAGE_DUE / TASK_DUE events."""

    async def dispatch(self, action: DueAction) -> None:
        if action.action in MESSAGE_ACTIONS:
            await self.send_message(action)
        else:
            await self.create_task(action)

    async def send_message(self, action: DueAction) -> None:
        await emit(SystemEvent(
            event_type=EventType.MESSAGE_DUE,
            org_id=action.org_id,
            entity_id=action.execution_id,
            data=self._payload(action),
            source_module="automation.dispatch",
        ))
        logger.info(
            "Message due: %s step=%d execution=%s",
            action.action.value,
            action.step_number,
            action.execution_id,
        )

    async def create_task(self, action: DueAction) -> None:
        await emit(SystemEvent(
            event_type=EventType.TASK_DUE,
            org_id=action.org_id,
            entity_id=action.execution_id,
            data=self._payload(action),
            source_module="automation.dispatch",
        ))
        logger.info(
            "Task due: %s step=%d execution=%s",
            action.action.value,
            action.step_number,
            action.execution_id,
        )

    @staticmethod
    def _payload(action: DueAction) -> dict:
        return action.model_dump(mode="json")
