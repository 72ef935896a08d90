"""Environment-driven configuration for the waweb relay."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger("waweb.config")

DEFAULT_PORT = 5000
DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 465
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_STARTUP_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

_dotenv_loaded = False


def load_env_once() -> None:
    """Load ``.env`` from the working directory once per process.

    Existing environment variables win over values from the file.
    """
    global _dotenv_loaded
    if _dotenv_loaded:
        return
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.debug("event=dotenv_loaded path=%s", env_path)
    _dotenv_loaded = True


def reset_env_state() -> None:
    """Forget that ``.env`` was loaded. For tests."""
    global _dotenv_loaded
    _dotenv_loaded = False


def _coerce_int(value: str | None, default: int = 0) -> int:
    if value is None:
        return default
    try:
        return int(str(value).strip() or default)
    except ValueError:
        return default


def _coerce_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    cleaned = value.strip().lower()
    if cleaned in _TRUTHY:
        return True
    if cleaned in _FALSY:
        return False
    return default


def _parse_duration(raw: str | None, *, default: float) -> float:
    if not raw:
        return default
    cleaned = raw.strip().lower()
    if not cleaned:
        return default
    if cleaned.endswith("ms"):
        try:
            return float(cleaned[:-2]) / 1000.0
        except ValueError:
            return default
    if cleaned.endswith("s"):
        cleaned = cleaned[:-1]
    try:
        value = float(cleaned)
    except ValueError:
        return default
    return value if value >= 0 else default


def _resolve_sessions_dir(raw: str | None) -> Path:
    candidate = Path(raw or "sessions")
    try:
        candidate.mkdir(parents=True, exist_ok=True)
    except OSError:
        alt = Path("/tmp/waweb-sessions")
        alt.mkdir(parents=True, exist_ok=True)
        return alt
    return candidate


@dataclass(frozen=True, slots=True)
class MailConfig:
    host: str
    port: int
    username: str
    password: str
    recipient: str

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password and self.recipient)

    @property
    def use_tls(self) -> bool:
        return self.port == 465


@dataclass(frozen=True, slots=True)
class WawebConfig:
    port: int
    production: bool
    log_level: str
    log_dir: Path
    sessions_dir: Path
    qr_path: Path
    reconnect_delay: float
    startup_timeout: float
    poll_interval: float
    headless: bool
    reset_on_auth_failure: bool
    mail: MailConfig


def mail_config() -> MailConfig:
    username = (os.getenv("EMAIL_HOST_USER") or "").strip()
    password = os.getenv("EMAIL_HOST_PASSWORD") or ""
    recipient = (os.getenv("WAWEB_NOTIFY_EMAIL") or "").strip() or username
    return MailConfig(
        host=(os.getenv("EMAIL_HOST") or "").strip() or DEFAULT_SMTP_HOST,
        port=_coerce_int(os.getenv("EMAIL_PORT"), DEFAULT_SMTP_PORT),
        username=username,
        password=password,
        recipient=recipient,
    )


def waweb_config() -> WawebConfig:
    load_env_once()

    env_name = (os.getenv("NODE_ENV") or os.getenv("APP_ENV") or "").strip().lower()
    log_level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO"

    return WawebConfig(
        port=_coerce_int(os.getenv("PORT"), DEFAULT_PORT),
        production=env_name == "production",
        log_level=log_level,
        log_dir=Path(os.getenv("WAWEB_LOG_DIR") or "."),
        sessions_dir=_resolve_sessions_dir(os.getenv("WAWEB_SESSIONS_DIR")),
        qr_path=Path(os.getenv("WAWEB_QR_PATH") or "qrcode.png"),
        reconnect_delay=_parse_duration(
            os.getenv("WAWEB_RECONNECT_DELAY"), default=DEFAULT_RECONNECT_DELAY
        ),
        startup_timeout=_parse_duration(
            os.getenv("WAWEB_STARTUP_TIMEOUT"), default=DEFAULT_STARTUP_TIMEOUT
        ),
        poll_interval=_parse_duration(
            os.getenv("WAWEB_POLL_INTERVAL"), default=DEFAULT_POLL_INTERVAL
        ),
        headless=_coerce_bool(os.getenv("WAWEB_HEADLESS"), True),
        reset_on_auth_failure=_coerce_bool(
            os.getenv("WAWEB_RESET_ON_AUTH_FAILURE"), False
        ),
        mail=mail_config(),
    )


__all__ = [
    "DEFAULT_PORT",
    "MailConfig",
    "WawebConfig",
    "load_env_once",
    "mail_config",
    "reset_env_state",
    "waweb_config",
]
