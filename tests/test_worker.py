"""Tests for the follow-up poller."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rivor.automation.engine import RunResult
from rivor.worker import MAX_BACKOFF_SECONDS, FollowUpPoller


def _session_factory(db: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=db)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


def _poller(db: AsyncMock, engine: MagicMock, **kwargs) -> FollowUpPoller:
    return FollowUpPoller(
        session_factory=_session_factory(db),
        engine_factory=lambda session: engine,
        interval_seconds=kwargs.pop("interval_seconds", 10.0),
        batch_size=kwargs.pop("batch_size", 5),
    )


class TestPollOnce:
    @pytest.mark.asyncio()
    async def test_runs_due_and_commits(self):
        db = AsyncMock()
        engine = MagicMock()
        engine.run_due = AsyncMock(return_value=RunResult(claimed=3, executed=2, failed=1))
        poller = _poller(db, engine, batch_size=7)

        result = await poller.poll_once()

        engine.run_due.assert_awaited_once_with(7)
        db.commit.assert_awaited_once()
        assert result.executed == 2
        assert poller.stats["polls"] == 1
        assert poller.stats["executed"] == 2
        assert poller.stats["failed"] == 1
        assert poller.stats["last_poll_at"] is not None

    @pytest.mark.asyncio()
    async def test_stats_accumulate(self):
        engine = MagicMock()
        engine.run_due = AsyncMock(return_value=RunResult(claimed=1, executed=1))
        poller = _poller(AsyncMock(), engine)

        await poller.poll_once()
        await poller.poll_once()

        assert poller.stats["polls"] == 2
        assert poller.stats["executed"] == 2

    @pytest.mark.asyncio()
    async def test_engine_error_skips_commit(self):
        db = AsyncMock()
        engine = MagicMock()
        engine.run_due = AsyncMock(side_effect=RuntimeError("db gone"))
        poller = _poller(db, engine)

        with pytest.raises(RuntimeError):
            await poller.poll_once()

        db.commit.assert_not_awaited()


class TestLoop:
    @pytest.mark.asyncio()
    async def test_backoff_grows_and_is_capped(self):
        poller = _poller(AsyncMock(), MagicMock(), interval_seconds=100.0)
        poller._running = True
        delays: list[float] = []

        async def fake_sleep(delay):
            delays.append(delay)
            if len(delays) == 3:
                poller._running = False

        with (
            patch.object(poller, "poll_once", AsyncMock(side_effect=RuntimeError("down"))),
            patch("rivor.worker.asyncio.sleep", fake_sleep),
        ):
            await poller._loop()

        assert delays == [200.0, MAX_BACKOFF_SECONDS, MAX_BACKOFF_SECONDS]

    @pytest.mark.asyncio()
    async def test_success_resets_backoff(self):
        poller = _poller(AsyncMock(), MagicMock(), interval_seconds=10.0)
        poller._running = True
        delays: list[float] = []

        async def fake_sleep(delay):
            delays.append(delay)
            if len(delays) == 3:
                poller._running = False

        outcomes = AsyncMock(side_effect=[RuntimeError("blip"), RunResult(), RuntimeError("blip")])
        with (
            patch.object(poller, "poll_once", outcomes),
            patch("rivor.worker.asyncio.sleep", fake_sleep),
        ):
            await poller._loop()

        assert delays == [20.0, 10.0, 20.0]

    @pytest.mark.asyncio()
    async def test_start_and_stop(self):
        engine = MagicMock()
        engine.run_due = AsyncMock(return_value=RunResult())
        poller = _poller(AsyncMock(), engine, interval_seconds=3600.0)

        await poller.start()
        assert poller.running
        await poller.start()  # second start is a no-op
        await asyncio.sleep(0)
        await poller.stop()

        assert not poller.running
        assert poller.stats["started_at"] is not None
        assert engine.run_due.await_count == 1
