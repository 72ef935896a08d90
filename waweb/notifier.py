"""Email the WhatsApp login QR code to an operator."""

from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage
from pathlib import Path
from typing import Optional, Protocol, Set

import aiosmtplib
import qrcode

from config import MailConfig

from .errors import ArtifactCleanupError, NotificationDeliveryError
from .events import QRCodeReceived
from .metrics import WA_QR_NOTIFY_TOTAL


LOGGER = logging.getLogger("waweb.notifier")

QR_SUBJECT = "New WhatsApp QR Code"
QR_BODY = "Scan the attached QR code to log in."
QR_FILENAME = "qrcode.png"
SMTP_TIMEOUT = 30.0


class Mailer(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SMTPMailer:
    def __init__(self, mail: MailConfig, *, timeout: float = SMTP_TIMEOUT) -> None:
        self._mail = mail
        self._timeout = timeout

    async def send(self, message: EmailMessage) -> None:
        await aiosmtplib.send(
            message,
            hostname=self._mail.host,
            port=self._mail.port,
            username=self._mail.username,
            password=self._mail.password,
            use_tls=self._mail.use_tls,
            timeout=self._timeout,
        )


def render_qr_png(payload: str, path: Path) -> Path:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF")
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as fh:
        img.save(fh)
    return path


class CredentialNotifier:
    """Render, send and clean up once per QR challenge.

    ``handle`` returns immediately and leaves the work to a background task.
    Runs are serialised because every run writes the same file.
    """

    def __init__(
        self,
        mail: MailConfig,
        qr_path: Path,
        *,
        mailer: Optional[Mailer] = None,
    ) -> None:
        self._mail = mail
        self._qr_path = qr_path
        self._mailer: Mailer = mailer or SMTPMailer(mail)
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task[bool]] = set()

    @property
    def qr_path(self) -> Path:
        return self._qr_path

    async def handle(self, event: QRCodeReceived) -> None:
        task = asyncio.create_task(self.notify(event.qr))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def notify(self, payload: str) -> bool:
        async with self._lock:
            try:
                await asyncio.to_thread(render_qr_png, payload, self._qr_path)
                LOGGER.info("event=qr_rendered path=%s", self._qr_path)
                return await self._deliver()
            except NotificationDeliveryError as exc:
                WA_QR_NOTIFY_TOTAL.labels("failed").inc()
                LOGGER.error("event=qr_email_failed error=%s", exc)
                return False
            except Exception:
                WA_QR_NOTIFY_TOTAL.labels("render_failed").inc()
                LOGGER.exception("event=qr_render_failed path=%s", self._qr_path)
                return False
            finally:
                await self._cleanup()

    async def _deliver(self) -> bool:
        if not self._mail.configured:
            WA_QR_NOTIFY_TOTAL.labels("skipped").inc()
            LOGGER.warning("event=qr_email_skipped reason=smtp_not_configured")
            return False
        data = await asyncio.to_thread(self._qr_path.read_bytes)
        message = EmailMessage()
        message["From"] = self._mail.username
        message["To"] = self._mail.recipient
        message["Subject"] = QR_SUBJECT
        message.set_content(QR_BODY)
        message.add_attachment(data, maintype="image", subtype="png", filename=QR_FILENAME)
        try:
            await self._mailer.send(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise NotificationDeliveryError(str(exc) or exc.__class__.__name__) from exc
        WA_QR_NOTIFY_TOTAL.labels("sent").inc()
        LOGGER.info("event=qr_email_sent to=%s", self._mail.recipient)
        return True

    async def _cleanup(self) -> None:
        try:
            await asyncio.to_thread(self._qr_path.unlink)
        except FileNotFoundError:
            return
        except OSError as exc:
            error = ArtifactCleanupError(str(exc))
            LOGGER.error("event=qr_cleanup_failed path=%s error=%s", self._qr_path, error)

    async def join(self) -> None:
        """Wait for notifications already in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.join()


__all__ = [
    "CredentialNotifier",
    "Mailer",
    "SMTPMailer",
    "render_qr_png",
    "QR_SUBJECT",
    "QR_BODY",
    "QR_FILENAME",
]
