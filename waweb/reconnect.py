from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Optional

from .events import ClientDisconnected
from .metrics import WA_RECONNECT_TOTAL


LOGGER = logging.getLogger("waweb.reconnect")


class ReconnectionController:
    """Re-initialize the client once, a fixed delay after it drops.

    ``pending`` is the single-flight guard: while it is set, further
    disconnect events are ignored. It is cleared when the attempt it guards
    finishes, whether ``initialize`` succeeded or failed.
    """

    def __init__(self, client: Any, *, delay: float = 5.0) -> None:
        self._client = client
        self._delay = delay
        self._pending = False
        self._stopped = False
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def pending(self) -> bool:
        return self._pending

    async def handle(self, event: ClientDisconnected) -> None:
        if self._stopped:
            LOGGER.info("event=reconnect_skip reason=%s stopped=true", event.reason)
            return
        if self._pending:
            WA_RECONNECT_TOTAL.labels("skipped").inc()
            LOGGER.info("event=reconnect_skip reason=%s pending=true", event.reason)
            return
        self._pending = True
        LOGGER.info(
            "event=reconnect_scheduled reason=%s delay=%.1f", event.reason, self._delay
        )
        self._task = asyncio.create_task(self._reconnect(event.reason))

    async def _reconnect(self, reason: str) -> None:
        try:
            await asyncio.sleep(self._delay)
            await self._client.initialize()
        except asyncio.CancelledError:
            WA_RECONNECT_TOTAL.labels("cancelled").inc()
            raise
        except Exception as exc:
            WA_RECONNECT_TOTAL.labels("failed").inc()
            LOGGER.error("event=reconnect_failed reason=%s error=%s", reason, exc)
        else:
            WA_RECONNECT_TOTAL.labels("ok").inc()
            LOGGER.info("event=reconnect_ok reason=%s", reason)
        finally:
            self._pending = False

    async def join(self) -> None:
        task = self._task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def shutdown(self) -> None:
        self._stopped = True
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._pending = False


__all__ = ["ReconnectionController"]
