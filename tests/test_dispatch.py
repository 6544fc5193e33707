"""Tests for the event-backed action dispatcher."""

from __future__ import annotations

import uuid

import pytest

from rivor.automation.dispatch import EventActionDispatcher
from rivor.models.enums import StepAction
from rivor.schemas.events import EventType
from rivor.schemas.sequences import DueAction


def _action(action: StepAction) -> DueAction:
    return DueAction(
        org_id=uuid.uuid4(),
        execution_id=uuid.uuid4(),
        sequence_id=uuid.uuid4(),
        step_number=2,
        action=action,
        subject="Hello",
        content="Checking in",
        contact_id=uuid.uuid4(),
    )


class TestEventActionDispatcher:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize("action", [StepAction.SEND_EMAIL, StepAction.SEND_SMS])
    async def test_messages(self, emitted, action):
        due = _action(action)
        await EventActionDispatcher().dispatch(due)

        event = emitted.await_args.args[0]
        assert event.event_type == EventType.MESSAGE_DUE
        assert event.entity_id == due.execution_id
        assert event.org_id == due.org_id
        assert event.data["action"] == action.value
        assert event.data["content"] == "Checking in"
        assert event.data["contact_id"] == str(due.contact_id)

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("action", [StepAction.CREATE_TASK, StepAction.SCHEDULE_CALL])
    async def test_tasks(self, emitted, action):
        await EventActionDispatcher().dispatch(_action(action))

        assert emitted.await_args.args[0].event_type == EventType.TASK_DUE
