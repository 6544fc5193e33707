"""Tests for the follow-up setup subscriber."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rivor.automation.subscribers import on_followup_setup_requested, register_subscribers
from rivor.errors import DuplicateExecutionError, NotFoundError
from rivor.schemas.events import EventType, SystemEvent


def _event(**data) -> SystemEvent:
    payload = {"trigger_event": "appointment_completed", "contact_id": str(uuid.uuid4())}
    payload.update(data)
    return SystemEvent(
        event_type=EventType.FOLLOWUP_SETUP_REQUESTED,
        org_id=uuid.uuid4(),
        entity_id=uuid.uuid4(),
        data=payload,
    )


@pytest.fixture()
def db() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def engine() -> MagicMock:
    engine = MagicMock()
    engine.trigger_smart = AsyncMock(return_value=MagicMock(id=uuid.uuid4()))
    return engine


@pytest.fixture()
def wired(db, engine):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=db)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    with (
        patch("rivor.automation.subscribers.async_session_factory", factory),
        patch("rivor.automation.subscribers.build_sequence_engine", return_value=engine) as build,
    ):
        yield build


class TestFollowUpSetup:
    @pytest.mark.asyncio()
    async def test_starts_smart_followup_and_commits(self, wired, db, engine):
        event = _event(lead_id=str(uuid.uuid4()), email_thread_id="thread-9")

        await on_followup_setup_requested(event)

        org_id, trigger, target = engine.trigger_smart.await_args.args
        assert org_id == event.org_id
        assert trigger == "appointment_completed"
        assert str(target.contact_id) == event.data["contact_id"]
        assert str(target.lead_id) == event.data["lead_id"]
        assert target.email_thread_id == "thread-9"
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_no_target_is_skipped(self, wired, engine):
        await on_followup_setup_requested(_event(contact_id=None))
        engine.trigger_smart.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_missing_trigger_is_skipped(self, wired, engine):
        await on_followup_setup_requested(_event(trigger_event=None))
        engine.trigger_smart.assert_not_awaited()

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "error",
        [NotFoundError("Default sequence for trigger event", "meeting_followup"), DuplicateExecutionError(uuid.uuid4())],
    )
    async def test_expected_outcomes_are_logged(self, wired, db, engine, error):
        engine.trigger_smart.side_effect = error

        await on_followup_setup_requested(_event())

        db.commit.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unexpected_errors_propagate_for_retry(self, wired, engine):
        engine.trigger_smart.side_effect = RuntimeError("db timeout")

        with pytest.raises(RuntimeError):
            await on_followup_setup_requested(_event())


class TestRegistration:
    def test_subscribes_to_followup_setup(self):
        with patch("rivor.automation.subscribers.subscribe") as mock_subscribe:
            register_subscribers()
        mock_subscribe.assert_called_once_with(
            on_followup_setup_requested, [EventType.FOLLOWUP_SETUP_REQUESTED]
        )
