"""Tests for the SQL repositories against a mocked AsyncSession.

Statements are compiled with the PostgreSQL dialect to check the
locking and filtering clauses without a live database.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from rivor.errors import LookupFailure
from rivor.models.execution import FollowUpExecution
from rivor.models.reminder import ReminderWorkItem
from rivor.repositories.sql import (
    SqlAppointmentRepository,
    SqlContactLookup,
    SqlExecutionRepository,
    SqlReminderRepository,
    _advisory_key,
)
from rivor.schemas.appointments import AppointmentFilters


# ── Helpers ──────────────────────────────────────────────────────────


def _make_db() -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    db.add_all = MagicMock()
    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=None)
    nested.__aexit__ = AsyncMock(return_value=False)
    db.begin_nested = MagicMock(return_value=nested)
    return db


def _rows(rows=None, one=None) -> MagicMock:
    result = MagicMock()
    scalars = MagicMock()
    scalars.all.return_value = rows or []
    scalars.first.return_value = (rows or [None])[0]
    result.scalars.return_value = scalars
    result.scalar_one_or_none.return_value = one
    return result


def _sql(db: AsyncMock, call: int = -1) -> str:
    stmt = db.execute.await_args_list[call].args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


def _execution() -> FollowUpExecution:
    return FollowUpExecution(
        organization_id=uuid.uuid4(),
        sequence_id=uuid.uuid4(),
        target_key="c:-",
        status="active",
    )


NOW = datetime(2026, 3, 4, 15, 0, tzinfo=timezone.utc)


# ── Advisory key ─────────────────────────────────────────────────────


class TestAdvisoryKey:
    def test_stable_and_signed_64_bit(self):
        org = uuid.uuid4()
        key = _advisory_key("appointments", org)
        assert key == _advisory_key("appointments", org)
        assert -(2**63) <= key < 2**63

    def test_namespaced(self):
        org = uuid.uuid4()
        assert _advisory_key("appointments", org) != _advisory_key("other", org)


# ── Appointments ─────────────────────────────────────────────────────


class TestSqlAppointmentRepository:
    @pytest.mark.asyncio()
    async def test_create_takes_advisory_lock_first(self):
        db = _make_db()
        db.execute.side_effect = [MagicMock(), _rows([])]
        appointment = MagicMock(organization_id=uuid.uuid4(), scheduled_at=NOW, ends_at=NOW, property_address=None)

        conflicts = await SqlAppointmentRepository(db).create_if_no_conflict(appointment)

        assert conflicts == []
        assert "pg_advisory_xact_lock" in _sql(db, 0)
        db.add.assert_called_once_with(appointment)
        db.flush.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_conflict_skips_insert(self):
        db = _make_db()
        existing = MagicMock()
        db.execute.side_effect = [MagicMock(), _rows([existing])]
        appointment = MagicMock(organization_id=uuid.uuid4(), scheduled_at=NOW, ends_at=NOW, property_address="1 A St")

        conflicts = await SqlAppointmentRepository(db).create_if_no_conflict(appointment)

        assert conflicts == [existing]
        db.add.assert_not_called()
        assert "appointments.property_address" in _sql(db, 1)

    @pytest.mark.asyncio()
    async def test_overlap_query_filters_blocking_statuses(self):
        db = _make_db()
        db.execute.return_value = _rows([])

        await SqlAppointmentRepository(db).find_overlapping(uuid.uuid4(), NOW, NOW)

        sql = _sql(db)
        assert "appointments.status IN" in sql
        assert "appointments.scheduled_at <" in sql
        assert "appointments.ends_at >" in sql
        assert "property_address" not in sql.split("WHERE", 1)[1]

    @pytest.mark.asyncio()
    async def test_list_applies_filters_and_limit(self):
        db = _make_db()
        db.execute.return_value = _rows([])

        await SqlAppointmentRepository(db).list(
            uuid.uuid4(), AppointmentFilters(status="confirmed", start_date=NOW, limit=10)
        )

        sql = _sql(db)
        assert "appointments.status =" in sql
        assert "appointments.scheduled_at >=" in sql
        assert "ORDER BY appointments.scheduled_at ASC" in sql
        assert "LIMIT" in sql


# ── Reminders ────────────────────────────────────────────────────────


class TestSqlReminderRepository:
    @pytest.mark.asyncio()
    async def test_add_many_uses_savepoint(self):
        db = _make_db()
        items = [ReminderWorkItem(kind="24_hour", trigger_at=NOW)]

        await SqlReminderRepository(db).add_many(items)

        db.begin_nested.assert_called_once()
        db.add_all.assert_called_once_with(items)

    @pytest.mark.asyncio()
    async def test_add_many_empty_is_noop(self):
        db = _make_db()
        await SqlReminderRepository(db).add_many([])
        db.begin_nested.assert_not_called()


# ── Executions ───────────────────────────────────────────────────────


class TestSqlExecutionRepository:
    @pytest.mark.asyncio()
    async def test_create_when_absent(self):
        db = _make_db()
        db.execute.return_value = _rows([])
        execution = _execution()

        result, created = await SqlExecutionRepository(db).create_if_absent(execution)

        assert created is True
        assert result is execution
        db.add.assert_called_once_with(execution)

    @pytest.mark.asyncio()
    async def test_existing_active_returned(self):
        db = _make_db()
        existing = _execution()
        db.execute.return_value = _rows([existing])

        result, created = await SqlExecutionRepository(db).create_if_absent(_execution())

        assert created is False
        assert result is existing
        db.add.assert_not_called()

    @pytest.mark.asyncio()
    async def test_lost_race_returns_winner(self):
        db = _make_db()
        winner = _execution()
        db.execute.side_effect = [_rows([]), _rows([winner])]
        db.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        result, created = await SqlExecutionRepository(db).create_if_absent(_execution())

        assert created is False
        assert result is winner

    @pytest.mark.asyncio()
    async def test_unexplained_integrity_error_propagates(self):
        db = _make_db()
        db.execute.side_effect = [_rows([]), _rows([])]
        db.flush.side_effect = IntegrityError("INSERT", {}, Exception("fk violation"))

        with pytest.raises(IntegrityError):
            await SqlExecutionRepository(db).create_if_absent(_execution())

    @pytest.mark.asyncio()
    async def test_claim_due_skips_locked_rows(self):
        db = _make_db()
        db.execute.return_value = _rows([])

        await SqlExecutionRepository(db).claim_due(NOW, 25)

        sql = _sql(db)
        assert "FOR UPDATE SKIP LOCKED" in sql
        assert "followup_executions.next_action_at <=" in sql
        assert "ORDER BY followup_executions.next_action_at ASC" in sql

    @pytest.mark.asyncio()
    async def test_isolated_scope_is_a_savepoint(self):
        db = _make_db()
        repo = SqlExecutionRepository(db)

        async with repo.isolated():
            await repo.save(_execution())

        db.begin_nested.assert_called_once_with()
        nested = db.begin_nested.return_value
        nested.__aenter__.assert_awaited_once()
        assert nested.__aexit__.await_args.args[0] is None

    @pytest.mark.asyncio()
    async def test_isolated_scope_rolls_back_on_flush_error(self):
        db = _make_db()
        db.flush.side_effect = DataError("UPDATE", {}, Exception("value too long"))
        repo = SqlExecutionRepository(db)

        with pytest.raises(DataError):
            async with repo.isolated():
                await repo.save(_execution())

        nested = db.begin_nested.return_value
        assert nested.__aexit__.await_args.args[0] is DataError

    @pytest.mark.asyncio()
    async def test_count_by_sequence(self):
        db = _make_db()
        seq_a, seq_b = uuid.uuid4(), uuid.uuid4()
        result = MagicMock()
        result.all.return_value = [(seq_a, 3), (seq_b, 1)]
        db.execute.return_value = result

        counts = await SqlExecutionRepository(db).count_by_sequence(uuid.uuid4())

        assert counts == {seq_a: 3, seq_b: 1}


# ── Contact lookup ───────────────────────────────────────────────────


class TestSqlContactLookup:
    @pytest.mark.asyncio()
    async def test_contact_snapshot(self):
        db = _make_db()
        row = MagicMock(id=uuid.uuid4(), display_name="Maria Lopez", tags=["vip"])
        db.execute.return_value = _rows(one=row)

        snapshot = await SqlContactLookup(db).get_contact(uuid.uuid4(), row.id)

        assert snapshot.display_name == "Maria Lopez"
        assert snapshot.tags == ["vip"]
        assert "contacts.organization_id" in _sql(db)

    @pytest.mark.asyncio()
    async def test_missing_lead(self):
        db = _make_db()
        db.execute.return_value = _rows(one=None)
        assert await SqlContactLookup(db).get_lead(uuid.uuid4(), uuid.uuid4()) is None

    @pytest.mark.asyncio()
    async def test_store_error_becomes_lookup_failure(self):
        db = _make_db()
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        with pytest.raises(LookupFailure):
            await SqlContactLookup(db).get_lead(uuid.uuid4(), uuid.uuid4())
