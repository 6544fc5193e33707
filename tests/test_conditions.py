"""Tests for the sequence condition evaluator.

Covers: empty/unrecognized conditions, leadStage, contactTags, timeOfDay,
AND semantics, and the fail-open policy on lookup errors.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from rivor.automation.conditions import ConditionEvaluator, EvaluationContext
from rivor.errors import LookupFailure
from rivor.repositories.memory import InMemoryContactLookup
from rivor.schemas.context import ContactSnapshot, LeadSnapshot


def _clock_at(hour: int):
    return lambda: datetime(2026, 3, 4, hour, 30, tzinfo=UTC)


@pytest.fixture()
def org() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def lookup(org) -> InMemoryContactLookup:
    store = InMemoryContactLookup()
    store.add_lead(org, LeadSnapshot(id=uuid.UUID(int=1), title="12 Oak St", stage="qualified"))
    store.add_contact(org, ContactSnapshot(id=uuid.UUID(int=2), display_name="Maria Lopez", tags=["buyer", "vip"]))
    return store


def _evaluator(lookup, hour: int = 12) -> ConditionEvaluator:
    return ConditionEvaluator(lookup, clock=_clock_at(hour), timezone="UTC")


class TestEmptyConditions:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize("conditions", [None, {}, {"unknownKey": 1}])
    async def test_matches(self, lookup, org, conditions):
        ctx = EvaluationContext(org_id=org)
        assert await _evaluator(lookup).evaluate(conditions, ctx) is True


class TestLeadStage:
    @pytest.mark.asyncio()
    async def test_exact_match(self, lookup, org):
        ctx = EvaluationContext(org_id=org, lead_id=uuid.UUID(int=1))
        assert await _evaluator(lookup).evaluate({"leadStage": "qualified"}, ctx) is True

    @pytest.mark.asyncio()
    async def test_different_stage(self, lookup, org):
        ctx = EvaluationContext(org_id=org, lead_id=uuid.UUID(int=1))
        assert await _evaluator(lookup).evaluate({"leadStage": "new"}, ctx) is False

    @pytest.mark.asyncio()
    async def test_unknown_lead_does_not_match(self, lookup, org):
        ctx = EvaluationContext(org_id=org, lead_id=uuid.uuid4())
        assert await _evaluator(lookup).evaluate({"leadStage": "qualified"}, ctx) is False

    @pytest.mark.asyncio()
    async def test_lead_from_other_org_does_not_match(self, lookup):
        ctx = EvaluationContext(org_id=uuid.uuid4(), lead_id=uuid.UUID(int=1))
        assert await _evaluator(lookup).evaluate({"leadStage": "qualified"}, ctx) is False

    @pytest.mark.asyncio()
    async def test_skipped_without_lead(self, lookup, org):
        ctx = EvaluationContext(org_id=org, contact_id=uuid.UUID(int=2))
        assert await _evaluator(lookup).evaluate({"leadStage": "qualified"}, ctx) is True


class TestContactTags:
    @pytest.mark.asyncio()
    async def test_all_tags_present(self, lookup, org):
        ctx = EvaluationContext(org_id=org, contact_id=uuid.UUID(int=2))
        assert await _evaluator(lookup).evaluate({"contactTags": ["buyer"]}, ctx) is True
        assert await _evaluator(lookup).evaluate({"contactTags": ["buyer", "vip"]}, ctx) is True

    @pytest.mark.asyncio()
    async def test_missing_tag(self, lookup, org):
        ctx = EvaluationContext(org_id=org, contact_id=uuid.UUID(int=2))
        assert await _evaluator(lookup).evaluate({"contactTags": ["seller"]}, ctx) is False

    @pytest.mark.asyncio()
    async def test_single_string_tag(self, lookup, org):
        ctx = EvaluationContext(org_id=org, contact_id=uuid.UUID(int=2))
        assert await _evaluator(lookup).evaluate({"contactTags": "vip"}, ctx) is True


class TestTimeOfDay:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize(("hour", "expected"), [(8, False), (9, True), (13, True), (17, True), (18, False)])
    async def test_inclusive_window(self, lookup, org, hour, expected):
        ctx = EvaluationContext(org_id=org)
        result = await _evaluator(lookup, hour).evaluate({"timeOfDay": {"start": 9, "end": 17}}, ctx)
        assert result is expected

    @pytest.mark.asyncio()
    async def test_uses_configured_zone(self, lookup, org):
        # 12:30 UTC is 07:30 in New York (EST, before DST starts)
        evaluator = ConditionEvaluator(lookup, clock=_clock_at(12), timezone="America/New_York")
        ctx = EvaluationContext(org_id=org)
        assert await evaluator.evaluate({"timeOfDay": {"start": 9, "end": 17}}, ctx) is False

    @pytest.mark.asyncio()
    async def test_malformed_window_is_ignored(self, lookup, org):
        ctx = EvaluationContext(org_id=org)
        assert await _evaluator(lookup).evaluate({"timeOfDay": {"begin": 9}}, ctx) is True


class TestCombined:
    @pytest.mark.asyncio()
    async def test_all_keys_are_anded(self, lookup, org):
        ctx = EvaluationContext(org_id=org, contact_id=uuid.UUID(int=2), lead_id=uuid.UUID(int=1))
        conditions = {
            "leadStage": "qualified",
            "contactTags": ["vip"],
            "timeOfDay": {"start": 9, "end": 17},
        }
        assert await _evaluator(lookup, 10).evaluate(conditions, ctx) is True
        assert await _evaluator(lookup, 20).evaluate(conditions, ctx) is False


class TestFailOpen:
    @pytest.mark.asyncio()
    async def test_lookup_failure_matches(self, org):
        failing = AsyncMock()
        failing.get_lead.side_effect = LookupFailure("db down")
        ctx = EvaluationContext(org_id=org, lead_id=uuid.uuid4())
        evaluator = ConditionEvaluator(failing, clock=_clock_at(12), timezone="UTC")
        assert await evaluator.evaluate({"leadStage": "qualified"}, ctx) is True

    @pytest.mark.asyncio()
    async def test_unexpected_error_matches(self, org):
        failing = AsyncMock()
        failing.get_contact.side_effect = RuntimeError("boom")
        ctx = EvaluationContext(org_id=org, contact_id=uuid.uuid4())
        evaluator = ConditionEvaluator(failing, clock=_clock_at(12), timezone="UTC")
        assert await evaluator.evaluate({"contactTags": ["vip"]}, ctx) is True
