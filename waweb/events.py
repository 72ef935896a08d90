"""Session lifecycle events and the ordered dispatcher that delivers them."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Union


LOGGER = logging.getLogger("waweb.events")


@dataclass(frozen=True, slots=True)
class QRCodeReceived:
    qr: str


@dataclass(frozen=True, slots=True)
class ClientReady:
    wid: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ClientDisconnected:
    reason: str


@dataclass(frozen=True, slots=True)
class AuthenticationFailed:
    message: str


LifecycleEvent = Union[QRCodeReceived, ClientReady, ClientDisconnected, AuthenticationFailed]
EventHandler = Callable[[LifecycleEvent], Awaitable[None]]


class EventStream:
    """Single-consumer channel for lifecycle events.

    ``publish`` never blocks. One background task takes events off the queue
    and awaits every subscribed handler before looking at the next event, so
    handlers observe events strictly in emission order and never concurrently.
    A failing handler is logged and does not stop the stream.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[LifecycleEvent]] = asyncio.Queue()
        self._handlers: Dict[type, List[EventHandler]] = {}
        self._task: Optional[asyncio.Task[None]] = None

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def publish(self, event: LifecycleEvent) -> None:
        self._queue.put_nowait(event)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._consume())

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._task = None
        if task.done():
            return
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def join(self) -> None:
        """Wait until every published event has been dispatched."""
        await self._queue.join()

    async def dispatch(self, event: LifecycleEvent) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception(
                    "event=handler_failed type=%s handler=%s",
                    type(event).__name__,
                    getattr(handler, "__qualname__", repr(handler)),
                )

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    return
                await self.dispatch(event)
            finally:
                self._queue.task_done()


__all__ = [
    "QRCodeReceived",
    "ClientReady",
    "ClientDisconnected",
    "AuthenticationFailed",
    "LifecycleEvent",
    "EventHandler",
    "EventStream",
]
