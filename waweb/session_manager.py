from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Optional, Set

from config import WawebConfig

from .client import DriverFactory, SessionStatus, WhatsAppWebClient
from .driver import PlaywrightDriver
from .errors import AuthFailure, InitializationError
from .events import (
    AuthenticationFailed,
    ClientDisconnected,
    ClientReady,
    EventStream,
    QRCodeReceived,
)
from .notifier import CredentialNotifier, Mailer
from .reconnect import ReconnectionController


LOGGER = logging.getLogger("waweb")


class SessionManager:
    """Wire the client, the QR notifier and the reconnection controller."""

    def __init__(
        self,
        cfg: WawebConfig,
        *,
        driver_factory: Optional[DriverFactory] = None,
        mailer: Optional[Mailer] = None,
    ) -> None:
        self._cfg = cfg
        self._events = EventStream()
        self._client = WhatsAppWebClient(
            driver_factory or self._build_driver,
            self._events,
            startup_timeout=cfg.startup_timeout,
            poll_interval=cfg.poll_interval,
            sessions_dir=cfg.sessions_dir,
        )
        self._notifier = CredentialNotifier(cfg.mail, cfg.qr_path, mailer=mailer)
        self._reconnector = ReconnectionController(
            self._client, delay=cfg.reconnect_delay
        )
        self._tasks: Set[asyncio.Task[Any]] = set()

        self._events.subscribe(QRCodeReceived, self._on_qr)
        self._events.subscribe(QRCodeReceived, self._notifier.handle)
        self._events.subscribe(ClientReady, self._on_ready)
        self._events.subscribe(ClientDisconnected, self._on_disconnected)
        self._events.subscribe(ClientDisconnected, self._reconnector.handle)
        self._events.subscribe(AuthenticationFailed, self._on_auth_failure)

    def _build_driver(self) -> PlaywrightDriver:
        return PlaywrightDriver(
            sessions_dir=self._cfg.sessions_dir,
            headless=self._cfg.headless,
            timeout=self._cfg.startup_timeout,
        )

    @property
    def client(self) -> WhatsAppWebClient:
        return self._client

    @property
    def events(self) -> EventStream:
        return self._events

    @property
    def notifier(self) -> CredentialNotifier:
        return self._notifier

    @property
    def reconnector(self) -> ReconnectionController:
        return self._reconnector

    async def start(self) -> None:
        await self._events.start()
        self._spawn(self._initialize(source="startup"))

    async def shutdown(self) -> None:
        await self._events.stop()
        await self._reconnector.shutdown()
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._notifier.shutdown()
        await self._client.shutdown()

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _initialize(self, *, source: str) -> None:
        try:
            await self._client.initialize()
        except (InitializationError, AuthFailure) as exc:
            LOGGER.error("stage=client_init_failed source=%s error=%s", source, exc)

    async def _on_qr(self, event: QRCodeReceived) -> None:
        LOGGER.info("stage=qr_received length=%s", len(event.qr))

    async def _on_ready(self, event: ClientReady) -> None:
        LOGGER.info("stage=ready wid=%s", event.wid or "-")

    async def _on_disconnected(self, event: ClientDisconnected) -> None:
        LOGGER.warning("stage=disconnected reason=%s", event.reason)

    async def _on_auth_failure(self, event: AuthenticationFailed) -> None:
        LOGGER.error("stage=auth_failure message=%s", event.message)
        if not self._cfg.reset_on_auth_failure:
            LOGGER.error(
                "stage=auth_failure action=manual_reset_required sessions_dir=%s",
                self._cfg.sessions_dir,
            )
            return
        self._spawn(self._recover_from_auth_failure())

    async def _recover_from_auth_failure(self) -> None:
        await self._client.reset_session()
        await self._initialize(source="auth_failure_reset")

    def is_ready(self) -> bool:
        return self._client.is_ready()

    def health_status(self) -> str:
        return self._client.health_status()

    def status(self) -> SessionStatus:
        return self._client.status

    async def send_message(self, phone: str, message: str) -> None:
        await self._client.send(phone, message)


__all__ = ["SessionManager"]
