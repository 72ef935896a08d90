from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from waweb.errors import InitializationError
from waweb.events import ClientDisconnected
from waweb.reconnect import ReconnectionController

from .fakes import wait_for


class _StubClient:
    def __init__(self, errors: Optional[List[Exception]] = None, *, hold: float = 0.0) -> None:
        self.errors = list(errors or [])
        self.hold = hold
        self.calls = 0

    async def initialize(self) -> None:
        self.calls += 1
        if self.hold:
            await asyncio.sleep(self.hold)
        if self.errors:
            raise self.errors.pop(0)


@pytest.mark.anyio
async def test_disconnect_schedules_single_initialize() -> None:
    client = _StubClient()
    controller = ReconnectionController(client, delay=0.01)

    await controller.handle(ClientDisconnected(reason="NAVIGATION"))
    assert controller.pending is True
    assert client.calls == 0

    await controller.join()
    assert client.calls == 1
    assert controller.pending is False


@pytest.mark.anyio
async def test_disconnects_while_pending_are_ignored() -> None:
    client = _StubClient(hold=0.05)
    controller = ReconnectionController(client, delay=0.01)

    await controller.handle(ClientDisconnected(reason="NAVIGATION"))
    await controller.handle(ClientDisconnected(reason="CONFLICT"))
    await wait_for(lambda: client.calls == 1)
    await controller.handle(ClientDisconnected(reason="LOGOUT"))

    await controller.join()
    assert client.calls == 1
    assert controller.pending is False


@pytest.mark.anyio
async def test_failed_attempt_clears_guard() -> None:
    client = _StubClient([InitializationError("startup_timeout")])
    controller = ReconnectionController(client, delay=0.0)

    await controller.handle(ClientDisconnected(reason="NAVIGATION"))
    await controller.join()
    assert controller.pending is False
    assert client.calls == 1

    await controller.handle(ClientDisconnected(reason="NAVIGATION"))
    await controller.join()
    assert client.calls == 2


@pytest.mark.anyio
async def test_successful_attempt_clears_guard() -> None:
    client = _StubClient()
    controller = ReconnectionController(client, delay=0.0)

    for _ in range(3):
        await controller.handle(ClientDisconnected(reason="NAVIGATION"))
        await controller.join()

    assert client.calls == 3
    assert controller.pending is False


@pytest.mark.anyio
async def test_shutdown_cancels_scheduled_attempt() -> None:
    client = _StubClient()
    controller = ReconnectionController(client, delay=10.0)

    await controller.handle(ClientDisconnected(reason="NAVIGATION"))
    await controller.shutdown()

    assert client.calls == 0
    assert controller.pending is False


@pytest.mark.anyio
async def test_disconnect_after_shutdown_is_ignored() -> None:
    client = _StubClient()
    controller = ReconnectionController(client, delay=0.0)

    await controller.shutdown()
    await controller.handle(ClientDisconnected(reason="NAVIGATION"))
    await controller.join()

    assert controller.pending is False
    assert client.calls == 0
