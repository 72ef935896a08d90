from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from waweb.driver import (
    CHAT_LIST_SELECTOR,
    OBSERVE_AUTH_FAILED,
    OBSERVE_LOADING,
    OBSERVE_QR,
    OBSERVE_READY,
    POPUP_SELECTOR,
    QR_RELOAD_SELECTOR,
    QR_SELECTOR,
    PlaywrightDriver,
)


class _FakeLocator:
    def __init__(self, page: "_FakePage", selector: str) -> None:
        self._page = page
        self._selector = selector

    @property
    def first(self) -> "_FakeLocator":
        return self

    async def count(self) -> int:
        return 1 if self._selector in self._page.elements else 0

    async def get_attribute(self, name: str) -> Optional[str]:
        return self._page.elements[self._selector].get(name)

    async def inner_text(self) -> str:
        return self._page.elements[self._selector].get("text", "")

    async def click(self) -> None:
        self._page.clicks.append(self._selector)
        if self._selector == QR_RELOAD_SELECTOR:
            del self._page.elements[QR_RELOAD_SELECTOR]
            self._page.elements[QR_SELECTOR] = {"data-ref": "2@rotated"}


class _FakePage:
    def __init__(self, elements: Dict[str, Dict[str, str]]) -> None:
        self.elements = elements
        self.clicks: List[str] = []

    def locator(self, selector: str) -> _FakeLocator:
        return _FakeLocator(self, selector)

    def is_closed(self) -> bool:
        return False

    async def evaluate(self, script: str) -> str:
        return '"15550001111@c.us"'


def _driver(tmp_path: Path, page: _FakePage) -> PlaywrightDriver:
    driver = PlaywrightDriver(sessions_dir=tmp_path / "profile")
    driver._page = page
    return driver


@pytest.mark.anyio
async def test_observe_reports_qr_payload(tmp_path: Path) -> None:
    driver = _driver(tmp_path, _FakePage({QR_SELECTOR: {"data-ref": "2@first"}}))

    observation = await driver.observe()

    assert observation.kind == OBSERVE_QR
    assert observation.qr == "2@first"


@pytest.mark.anyio
async def test_expired_qr_is_reloaded(tmp_path: Path) -> None:
    page = _FakePage(
        {
            QR_SELECTOR: {"data-ref": "2@expired"},
            QR_RELOAD_SELECTOR: {},
        }
    )
    driver = _driver(tmp_path, page)

    first = await driver.observe()
    second = await driver.observe()

    assert first.kind == OBSERVE_LOADING
    assert page.clicks == [QR_RELOAD_SELECTOR]
    assert second.kind == OBSERVE_QR
    assert second.qr == "2@rotated"


@pytest.mark.anyio
async def test_observe_reports_ready_with_wid(tmp_path: Path) -> None:
    driver = _driver(tmp_path, _FakePage({CHAT_LIST_SELECTOR: {}}))

    observation = await driver.observe()

    assert observation.kind == OBSERVE_READY
    assert observation.wid == "15550001111@c.us"


@pytest.mark.anyio
async def test_observe_reports_rejected_login(tmp_path: Path) -> None:
    page = _FakePage({POPUP_SELECTOR: {"text": "Couldn't link device. Try again."}})
    driver = _driver(tmp_path, page)

    observation = await driver.observe()

    assert observation.kind == OBSERVE_AUTH_FAILED
    assert observation.reason == "Couldn't link device. Try again."
