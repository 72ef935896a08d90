from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:  # pragma: no cover - path setup
    sys.path.insert(0, str(ROOT_DIR))

import waweb.api as wa_api


class StubSessionManager:
    def __init__(self) -> None:
        self.ready = True
        self.raise_health = False
        self.send_error: Optional[Exception] = None
        self.sent: List[Tuple[str, str]] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def shutdown(self) -> None:
        self.stopped = True

    def is_ready(self) -> bool:
        return self.ready

    def health_status(self) -> str:
        if self.raise_health:
            raise RuntimeError("health error")
        return "connected" if self.ready else "disconnected"

    async def send_message(self, phone: str, message: str) -> None:
        self.sent.append((phone, message))
        if self.send_error is not None:
            raise self.send_error


@pytest.fixture
def waweb_client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("WAWEB_SESSIONS_DIR", str(tmp_path / "sessions"))
    stub = StubSessionManager()
    monkeypatch.setattr(wa_api, "SessionManager", lambda *args, **kwargs: stub)
    app = wa_api.create_app()
    with TestClient(app) as client:
        yield client, stub
