"""Follow-up poller: the periodic trigger that ticks due executions.

Every ``poll_interval_seconds`` a fresh session claims due executions
(``FOR UPDATE SKIP LOCKED``, so several app instances can poll the same
table), runs them through ``SequenceEngine.run_due`` and commits. Poll
errors back off exponentially up to five minutes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rivor.automation.engine import RunResult, SequenceEngine
from rivor.clock import utcnow
from rivor.config import settings
from rivor.db.engine import async_session_factory
from rivor.factory import build_sequence_engine

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 300.0

EngineFactory = Callable[[AsyncSession], SequenceEngine]


class FollowUpPoller:
    """Background asyncio task that calls ``run_due`` on an interval."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        engine_factory: EngineFactory = build_sequence_engine,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory or async_session_factory
        self._engine_factory = engine_factory
        self.interval_seconds = interval_seconds or settings.automation.poll_interval_seconds
        self.batch_size = batch_size or settings.automation.batch_size
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self.stats: dict[str, Any] = {
            "polls": 0,
            "executed": 0,
            "failed": 0,
            "started_at": None,
        }

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start polling in the background. No-op if already running."""
        if self._running:
            logger.warning("Follow-up poller already running")
            return
        self._running = True
        self.stats["started_at"] = utcnow()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Follow-up poller started (interval=%.1fs, batch=%d)",
            self.interval_seconds,
            self.batch_size,
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to exit."""
        if not self._running:
            return
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info(
            "Follow-up poller stopped (polls=%d, executed=%d, failed=%d)",
            self.stats["polls"],
            self.stats["executed"],
            self.stats["failed"],
        )

    async def _loop(self) -> None:
        consecutive_errors = 0
        while self._running:
            try:
                await self.poll_once()
                consecutive_errors = 0
                delay = self.interval_seconds
            except asyncio.CancelledError:
                break
            except Exception:
                consecutive_errors += 1
                delay = min(self.interval_seconds * 2**consecutive_errors, MAX_BACKOFF_SECONDS)
                logger.exception(
                    "Poll cycle failed (errors=%d), retrying in %.1fs",
                    consecutive_errors,
                    delay,
                )
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

    async def poll_once(self) -> RunResult:
        """One claim-and-tick cycle in its own transaction."""
        self.stats["polls"] += 1
        async with self._session_factory() as db:
            engine = self._engine_factory(db)
            result = await engine.run_due(self.batch_size)
            await db.commit()

        self.stats["executed"] += result.executed
        self.stats["failed"] += result.failed
        self.stats["last_poll_at"] = utcnow()
        return result
