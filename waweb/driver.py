from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright


LOGGER = logging.getLogger("waweb.driver")

WHATSAPP_WEB_URL = "https://web.whatsapp.com/"

QR_SELECTOR = "div[data-ref]"
QR_RELOAD_SELECTOR = "div[data-ref] button"
CHAT_LIST_SELECTOR = "#pane-side"
COMPOSER_SELECTOR = "footer div[contenteditable='true']"
POPUP_SELECTOR = "div[data-animate-modal-popup='true']"
AUTH_FAILURE_MARKERS = ("couldn't link device", "log in again", "logged out")

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

OBSERVE_LOADING = "loading"
OBSERVE_QR = "qr"
OBSERVE_READY = "ready"
OBSERVE_AUTH_FAILED = "auth_failed"
OBSERVE_CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class PageObservation:
    """What the WhatsApp Web tab currently shows."""

    kind: str
    qr: Optional[str] = None
    wid: Optional[str] = None
    reason: Optional[str] = None


class PlaywrightDriver:
    """Drive one WhatsApp Web tab in a persistent Chromium profile.

    The profile directory keeps cookies and local storage between restarts,
    so a previously linked device comes back without a new QR scan.
    """

    def __init__(
        self,
        *,
        sessions_dir: Path,
        headless: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._sessions_dir = sessions_dir
        self._headless = headless
        self._timeout_ms = int(timeout * 1000)
        self._playwright: Any = None
        self._context: Any = None
        self._page: Any = None
        self._closed = False
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        self._sessions_dir.mkdir(parents=True, exist_ok=True)
        self._closed = False
        self._playwright = await async_playwright().start()
        try:
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self._sessions_dir),
                headless=self._headless,
                args=BROWSER_ARGS,
                timeout=self._timeout_ms,
            )
            self._context.on("close", self._on_close)
            pages = self._context.pages
            self._page = pages[0] if pages else await self._context.new_page()
            self._page.on("close", self._on_close)
            self._page.set_default_timeout(self._timeout_ms)
            await self._page.goto(
                WHATSAPP_WEB_URL,
                wait_until="domcontentloaded",
                timeout=self._timeout_ms,
            )
        except Exception:
            await self.close()
            raise
        LOGGER.info("event=browser_started profile=%s", self._sessions_dir)

    def _on_close(self, *_: Any) -> None:
        self._closed = True

    def _page_gone(self) -> bool:
        page = self._page
        return page is None or self._closed or page.is_closed()

    async def observe(self) -> PageObservation:
        if self._page_gone():
            return PageObservation(OBSERVE_CLOSED, reason="PAGE_CLOSED")
        async with self._lock:
            page = self._page
            try:
                if await page.locator(CHAT_LIST_SELECTOR).count():
                    return PageObservation(OBSERVE_READY, wid=await self._read_wid())
                reload_button = page.locator(QR_RELOAD_SELECTOR)
                if await reload_button.count():
                    # expired QR; WhatsApp Web stops rotating until reload is clicked
                    await reload_button.first.click()
                    LOGGER.info("event=qr_reload_clicked")
                    return PageObservation(OBSERVE_LOADING)
                qr = page.locator(QR_SELECTOR)
                if await qr.count():
                    payload = await qr.first.get_attribute("data-ref")
                    if payload:
                        return PageObservation(OBSERVE_QR, qr=payload)
                popup = page.locator(POPUP_SELECTOR)
                if await popup.count():
                    text = (await popup.first.inner_text()).strip()
                    lowered = text.lower()
                    if any(marker in lowered for marker in AUTH_FAILURE_MARKERS):
                        return PageObservation(OBSERVE_AUTH_FAILED, reason=text)
            except PlaywrightError:
                if self._page_gone():
                    return PageObservation(OBSERVE_CLOSED, reason="PAGE_CLOSED")
                raise
        return PageObservation(OBSERVE_LOADING)

    async def _read_wid(self) -> Optional[str]:
        try:
            raw = await self._page.evaluate(
                "() => window.localStorage.getItem('last-wid-md')"
                " || window.localStorage.getItem('last-wid')"
            )
        except PlaywrightError:
            return None
        if not raw:
            return None
        return str(raw).strip().strip('"') or None

    async def send_text(self, chat_id: str, text: str) -> None:
        phone = chat_id.split("@", 1)[0]
        url = f"{WHATSAPP_WEB_URL}send?phone={phone}&text={quote(text)}"
        async with self._lock:
            if self._page_gone():
                raise RuntimeError("page_closed")
            page = self._page
            await page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
            composer = page.locator(COMPOSER_SELECTOR)
            popup = page.locator(POPUP_SELECTOR)
            await composer.or_(popup).first.wait_for(
                state="visible", timeout=self._timeout_ms
            )
            if not await composer.count():
                message = (await popup.first.inner_text()).strip()
                raise RuntimeError(message or "invalid_recipient")
            await composer.first.click()
            await page.keyboard.press("Enter")
            await asyncio.sleep(0.5)

    async def close(self) -> None:
        context, playwright = self._context, self._playwright
        self._context = None
        self._playwright = None
        self._page = None
        self._closed = True
        if context is not None:
            with contextlib.suppress(Exception):
                await context.close()
        if playwright is not None:
            with contextlib.suppress(Exception):
                await playwright.stop()


__all__ = [
    "PageObservation",
    "PlaywrightDriver",
    "OBSERVE_LOADING",
    "OBSERVE_QR",
    "OBSERVE_READY",
    "OBSERVE_AUTH_FAILED",
    "OBSERVE_CLOSED",
    "WHATSAPP_WEB_URL",
]
