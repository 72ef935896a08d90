from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, ValidationError

from config import waweb_config

from .errors import DeliveryError, NotReady
from .session_manager import SessionManager


logger = logging.getLogger("waweb.api")

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

ERROR_FIELDS_REQUIRED = "Phone and message are required"
ERROR_NOT_READY = "WhatsApp client not ready"
ERROR_SEND_FAILED = "Failed to send message"
STATUS_SENT = "Message sent successfully!"


class SendRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    phone: Optional[str] = None
    message: Optional[str] = None


def create_app() -> FastAPI:
    cfg = waweb_config()
    manager = SessionManager(cfg)

    app = FastAPI(title="waweb")
    app.state.session_manager = manager
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:  # pragma: no cover - wiring
        await manager.start()
        logger.info("event=startup port=%s", cfg.port)
        if not cfg.mail.configured:
            logger.warning("event=smtp_not_configured qr_email=disabled")

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - wiring
        await manager.shutdown()

    def _safe_health_status() -> str:
        try:
            return manager.health_status()
        except Exception:
            logger.warning("event=health_status_failed", exc_info=True)
        return "disconnected"

    @app.post("/send")
    async def send_message(request: Request):
        headers = dict(NO_STORE_HEADERS)

        def _error(status: int, message: str, **extra: Any) -> JSONResponse:
            body: dict[str, Any] = {"error": message}
            body.update(extra)
            return JSONResponse(body, status_code=status, headers=headers)

        try:
            raw_payload = await request.json()
        except ValueError:
            raw_payload = None
        if not isinstance(raw_payload, dict):
            raw_payload = {}

        try:
            payload = SendRequest.model_validate(raw_payload)
        except ValidationError:
            return _error(400, ERROR_FIELDS_REQUIRED)

        phone = (payload.phone or "").strip()
        message = payload.message or ""
        if not phone or not message:
            return _error(400, ERROR_FIELDS_REQUIRED)

        if not manager.is_ready():
            return _error(503, ERROR_NOT_READY)

        logger.info("event=send_message phone=%s length=%s", phone, len(message))
        try:
            await manager.send_message(phone, message)
        except NotReady:
            return _error(503, ERROR_NOT_READY)
        except DeliveryError as exc:
            logger.error("event=send_message_failed route=/send phone=%s error=%s", phone, exc)
            return _error(500, ERROR_SEND_FAILED, details=str(exc))

        return JSONResponse({"status": STATUS_SENT}, headers=headers)

    @app.get("/health")
    async def health():
        return JSONResponse(
            {"status": _safe_health_status()}, headers=dict(NO_STORE_HEADERS)
        )

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return PlainTextResponse(data.decode("utf-8"), media_type=CONTENT_TYPE_LATEST)

    return app


__all__ = ["create_app", "SendRequest"]
