from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from .driver import (
    OBSERVE_AUTH_FAILED,
    OBSERVE_CLOSED,
    OBSERVE_QR,
    OBSERVE_READY,
    PageObservation,
)
from .errors import AuthFailure, DeliveryError, InitializationError, NotReady
from .events import (
    AuthenticationFailed,
    ClientDisconnected,
    ClientReady,
    EventStream,
    QRCodeReceived,
)
from .metrics import (
    WA_AUTH_FAILURES_TOTAL,
    WA_DISCONNECTS_TOTAL,
    WA_MESSAGES_SENT_TOTAL,
    WA_QR_TOTAL,
    WA_SEND_FAILED_TOTAL,
    WA_SESSION_READY,
)


LOGGER = logging.getLogger("waweb")

CHAT_SUFFIX = "@c.us"
REASON_LOGOUT = "LOGOUT"
REASON_WATCH_ERROR = "WATCH_ERROR"


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    AWAITING_CREDENTIALS = "awaiting_credentials"
    READY = "ready"
    DISCONNECTED = "disconnected"
    AUTH_FAILED = "auth_failed"


@dataclass(slots=True)
class SessionState:
    status: SessionStatus = SessionStatus.UNINITIALIZED
    wid: Optional[str] = None
    last_qr: Optional[str] = None
    last_error: Optional[str] = None


DriverFactory = Callable[[], Any]


def to_chat_id(phone: str) -> str:
    """Turn a phone-number-like string into a WhatsApp chat id."""
    cleaned = (phone or "").strip()
    if cleaned.endswith(CHAT_SUFFIX):
        cleaned = cleaned[: -len(CHAT_SUFFIX)]
    digits = re.sub(r"\D", "", cleaned)
    if not digits:
        raise ValueError("invalid_phone")
    return f"{digits}{CHAT_SUFFIX}"


class WhatsAppWebClient:
    """Own one WhatsApp Web session and report its lifecycle.

    A watch task polls the driver and turns what the page shows into
    state transitions; every transition that matters to the rest of the
    service is published on the event stream. Reconnecting after a drop is
    left to whoever listens for ``ClientDisconnected``.
    """

    def __init__(
        self,
        driver_factory: DriverFactory,
        events: EventStream,
        *,
        startup_timeout: float = 30.0,
        poll_interval: float = 1.0,
        sessions_dir: Optional[Path] = None,
    ) -> None:
        self._driver_factory = driver_factory
        self._events = events
        self._startup_timeout = startup_timeout
        self._poll_interval = poll_interval
        self._sessions_dir = sessions_dir
        self._state = SessionState()
        self._driver: Any = None
        self._watch_task: Optional[asyncio.Task[None]] = None
        self._init_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    def is_ready(self) -> bool:
        return self._state.status is SessionStatus.READY and self._driver is not None

    def health_status(self) -> str:
        return "connected" if self.is_ready() else "disconnected"

    def _set_status(self, status: SessionStatus, *, reason: str | None = None) -> None:
        previous = self._state.status
        if previous is not status:
            LOGGER.info(
                "stage=state_transition from=%s to=%s reason=%s",
                previous.value,
                status.value,
                reason or "-",
            )
        self._state.status = status
        WA_SESSION_READY.set(1 if status is SessionStatus.READY else 0)

    async def initialize(self) -> None:
        async with self._init_lock:
            if self._driver is not None:
                LOGGER.debug("event=initialize_skip reason=already_running")
                return
            if self._state.status is SessionStatus.AUTH_FAILED:
                raise AuthFailure(self._state.last_error or "auth_failure")
            driver = self._driver_factory()
            try:
                await asyncio.wait_for(driver.start(), timeout=self._startup_timeout)
            except asyncio.TimeoutError as exc:
                await self._close_driver(driver)
                self._state.last_error = "startup_timeout"
                raise InitializationError("startup_timeout") from exc
            except asyncio.CancelledError:
                await self._close_driver(driver)
                raise
            except Exception as exc:
                await self._close_driver(driver)
                self._state.last_error = str(exc) or exc.__class__.__name__
                raise InitializationError(self._state.last_error) from exc
            self._driver = driver
            self._state.last_qr = None
            self._state.last_error = None
            self._watch_task = asyncio.create_task(self._watch(driver))
            LOGGER.info("stage=initialized status=%s", self._state.status.value)

    async def _watch(self, driver: Any) -> None:
        try:
            while self._driver is driver:
                observation = await driver.observe()
                if not await self._apply(driver, observation):
                    return
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.exception("stage=watch_failed error=%s", exc)
            await self._disconnect(driver, reason=REASON_WATCH_ERROR)

    async def _apply(self, driver: Any, observation: PageObservation) -> bool:
        kind = observation.kind
        state = self._state
        if kind == OBSERVE_READY:
            if state.status is not SessionStatus.READY:
                state.wid = observation.wid or state.wid
                state.last_qr = None
                self._set_status(SessionStatus.READY, reason="authenticated")
                self._events.publish(ClientReady(wid=state.wid))
            return True
        if kind == OBSERVE_QR:
            if state.status is SessionStatus.READY:
                await self._disconnect(driver, reason=REASON_LOGOUT)
                return False
            self._set_status(SessionStatus.AWAITING_CREDENTIALS, reason="qr")
            if observation.qr and observation.qr != state.last_qr:
                state.last_qr = observation.qr
                WA_QR_TOTAL.inc()
                self._events.publish(QRCodeReceived(qr=observation.qr))
            return True
        if kind == OBSERVE_AUTH_FAILED:
            # logged out after authenticating counts as a drop
            if state.status is SessionStatus.READY:
                await self._disconnect(driver, reason=REASON_LOGOUT)
                return False
            message = observation.reason or "auth_failure"
            self._detach(driver)
            state.last_error = message
            state.last_qr = None
            self._set_status(SessionStatus.AUTH_FAILED, reason="auth_failure")
            WA_AUTH_FAILURES_TOTAL.inc()
            self._events.publish(AuthenticationFailed(message=message))
            await self._close_driver(driver)
            return False
        if kind == OBSERVE_CLOSED:
            await self._disconnect(driver, reason=observation.reason or "PAGE_CLOSED")
            return False
        return True

    def _detach(self, driver: Any) -> None:
        if self._driver is driver:
            self._driver = None
            self._watch_task = None

    async def _disconnect(self, driver: Any, *, reason: str) -> None:
        self._detach(driver)
        self._state.last_error = reason
        self._state.last_qr = None
        self._set_status(SessionStatus.DISCONNECTED, reason=reason)
        WA_DISCONNECTS_TOTAL.labels(reason).inc()
        self._events.publish(ClientDisconnected(reason=reason))
        await self._close_driver(driver)

    @staticmethod
    async def _close_driver(driver: Any) -> None:
        with contextlib.suppress(Exception):
            await driver.close()

    async def send(self, destination: str, body: str) -> None:
        driver = self._driver
        if self._state.status is not SessionStatus.READY or driver is None:
            raise NotReady(self._state.status.value)
        try:
            chat_id = to_chat_id(destination)
            await driver.send_text(chat_id, body)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            WA_SEND_FAILED_TOTAL.labels(exc.__class__.__name__).inc()
            LOGGER.error("stage=send_fail phone=%s error=%s", destination, exc)
            raise DeliveryError(exc) from exc
        WA_MESSAGES_SENT_TOTAL.inc()
        LOGGER.info("stage=send_ok chat_id=%s", chat_id)

    async def shutdown(self) -> None:
        task = self._watch_task
        driver = self._driver
        self._watch_task = None
        self._driver = None
        if self._state.status is SessionStatus.READY:
            self._set_status(SessionStatus.DISCONNECTED, reason="shutdown")
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if driver is not None:
            await self._close_driver(driver)

    async def reset_session(self) -> bool:
        """Drop the stored profile so the next initialize asks for a new QR."""
        await self.shutdown()
        removed = False
        if self._sessions_dir is not None:
            with contextlib.suppress(FileNotFoundError):
                await asyncio.to_thread(shutil.rmtree, self._sessions_dir)
                removed = True
        self._state.wid = None
        self._state.last_qr = None
        self._set_status(SessionStatus.UNINITIALIZED, reason="reset")
        LOGGER.info("stage=hard_reset removed_session_dir=%s", removed)
        return removed


__all__ = [
    "SessionStatus",
    "SessionState",
    "WhatsAppWebClient",
    "to_chat_id",
]
