"""In-process asynchronous event dispatcher.

Publishers enqueue events without waiting; a single background worker hands
each event to the handlers registered for its type. Delivery policy: at most
once, no retries. A handler failure is logged and the event dropped; a full
queue drops new events with a warning. Neither ever reaches the publisher.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Coroutine, Optional

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from taskscope.shared.events.context import get_client_ip

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]


class EventDispatcher:
    """Queue plus background worker that delivers events to handlers."""

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue[dict[str, Any]]] = None
        self._worker: Optional[asyncio.Task[None]] = None
        self._handlers: dict[str, list[EventHandler]] = {}

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for a specific event type."""
        self._handlers.setdefault(event_type, []).append(handler)

    async def start(self, maxsize: int = 1000) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=maxsize)
        self._worker = asyncio.create_task(self._consume(), name="event-dispatcher")
        logger.info("Event dispatcher started (queue size %s)", maxsize)

    async def stop(self) -> None:
        """Deliver what is already queued, then stop the worker and detach handlers."""
        if self._worker is None:
            return
        if self.running and self._queue is not None:
            await self._queue.join()
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        self._queue = None
        self._handlers.clear()
        logger.info("Event dispatcher stopped")

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        if self.running and self._queue is not None:
            await self._queue.join()

    def publish(self, event: dict[str, Any]) -> None:
        """Enqueue an event; never blocks and never raises."""
        if not self.running or self._queue is None:
            logger.warning("Event dispatcher not started, skipping event: %s", event.get("event_type"))
            return
        if event.get("ip_address") is None:
            event = {**event, "ip_address": get_client_ip()}
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Event queue full, dropping event: %s", event.get("event_type"))

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: dict[str, Any]) -> None:
        event_type = event.get("event_type", "")
        handlers = self._handlers.get(event_type, [])
        if not handlers:
            logger.debug("No handler for event type: %s", event_type)
            return
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Error handling event %s", event_type)


# Global instance
event_dispatcher = EventDispatcher()


# Transaction-bound publishing

_PENDING_KEY = "pending_events"


def publish_on_commit(session: AsyncSession, event: dict[str, Any]) -> None:
    """Queue an event for publication once the session's transaction commits.

    Events are discarded if the transaction rolls back.
    """
    if event.get("ip_address") is None:
        event = {**event, "ip_address": get_client_ip()}
    session.sync_session.info.setdefault(_PENDING_KEY, []).append(event)


@sa_event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    for pending in session.info.pop(_PENDING_KEY, []):
        event_dispatcher.publish(pending)


@sa_event.listens_for(Session, "after_soft_rollback")
def _discard_pending(session: Session, previous_transaction: Any) -> None:
    if previous_transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)
