"""In-process event bus carrying SystemEvents to subscribers.

Emitters never wait on subscribers: ``emit`` enqueues and returns, a
background task delivers each event to every matching handler
concurrently. A failing handler is retried with exponential backoff
(``settings.events``) and, once attempts run out, logged and dropped;
other handlers for the same event are unaffected.

    from rivor.events.bus import emit, subscribe

    subscribe(on_completed, [EventType.APPOINTMENT_COMPLETED])
    await emit(SystemEvent(event_type=EventType.APPOINTMENT_COMPLETED, ...))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from rivor.config import settings
from rivor.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Awaitable[None]]


def _name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))


class EventBus:
    """Queue plus one delivery task. ``None`` keys handlers that want every event."""

    def __init__(self) -> None:
        self._handlers: dict[EventType | None, list[EventHandler]] = {}
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler, event_types: Iterable[EventType] | None = None) -> None:
        keys: list[EventType | None] = [None] if event_types is None else list(event_types)
        for key in keys:
            self._handlers.setdefault(key, []).append(handler)
        logger.info(
            "Subscribed %s to %s",
            _name(handler),
            "all events" if event_types is None else [k.value for k in keys if k is not None],
        )

    def unsubscribe(self, handler: EventHandler) -> None:
        for handlers in self._handlers.values():
            while handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [*self._handlers.get(None, []), *self._handlers.get(event_type, [])]

    def clear(self) -> None:
        self._handlers.clear()

    # ── Publishing ───────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def publish(self, event: SystemEvent) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        if not self.running:
            self._worker = asyncio.create_task(self._drain(self._queue))
        await self._queue.put(event)
        logger.debug("Queued %s (org=%s entity=%s)", event.event_type.value, event.org_id, event.entity_id)

    async def deliver(self, event: SystemEvent) -> None:
        """Run every matching handler for ``event``; failures are logged per handler."""
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            return
        outcomes = await asyncio.gather(
            *(self._call_with_retry(h, event) for h in handlers),
            return_exceptions=True,
        )
        for handler, outcome in zip(handlers, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Dropped %s for %s: %s", event.event_type.value, _name(handler), outcome)

    async def _call_with_retry(self, handler: EventHandler, event: SystemEvent) -> None:
        attempts = max(1, settings.events.handler_max_attempts)
        delay = settings.events.handler_backoff_seconds
        for attempt in range(1, attempts + 1):
            try:
                await handler(event)
                return
            except Exception:
                if attempt == attempts:
                    logger.exception(
                        "%s gave up on %s after %d attempt(s)",
                        _name(handler),
                        event.event_type.value,
                        attempt,
                    )
                    raise
                logger.warning(
                    "%s failed on %s (attempt %d/%d); retrying in %.1fs",
                    _name(handler),
                    event.event_type.value,
                    attempt,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= 2

    async def _drain(self, queue: asyncio.Queue[SystemEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.deliver(event)
            except Exception:
                logger.exception("Delivery crashed for %s", event.event_type.value)
            finally:
                queue.task_done()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.running:
            logger.debug("Event bus already running; keeping the current worker")
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._drain(self._queue))
        logger.info("Event bus started (%d subscription key(s))", len(self._handlers))

    async def stop(self) -> None:
        """Deliver what is queued, then cancel the worker."""
        if self._queue is not None and self.running:
            await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None
        logger.info("Event bus stopped")


# ── Process-wide bus ─────────────────────────────────────────────────

bus = EventBus()


def subscribe(handler: EventHandler, event_types: Iterable[EventType] | None = None) -> None:
    bus.subscribe(handler, event_types)


def unsubscribe(handler: EventHandler) -> None:
    bus.unsubscribe(handler)


async def emit(event: SystemEvent) -> None:
    await bus.publish(event)


async def start_event_system() -> None:
    await bus.start()


async def stop_event_system() -> None:
    await bus.stop()
