from __future__ import annotations

import logging
import re
from logging import FileHandler, StreamHandler
from typing import ClassVar

from config import WawebConfig


LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
ERROR_LOG = "error.log"
COMBINED_LOG = "combined.log"


class SecretFilter(logging.Filter):
    """Replace registered secrets with ``[REDACTED]`` in log records."""

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is not None:
            record.msg = self._pattern.sub("[REDACTED]", str(record.msg))
            if record.args:
                record.args = tuple(
                    self._pattern.sub("[REDACTED]", arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        if secret:
            cls._secrets.add(secret)
            cls._pattern = re.compile("|".join(re.escape(s) for s in cls._secrets))

    @classmethod
    def clear_secrets(cls) -> None:
        cls._secrets.clear()
        cls._pattern = None


def init_logging(cfg: WawebConfig) -> None:
    """File logging always; console logging outside production."""
    level = getattr(logging, cfg.log_level, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)
    secret_filter = SecretFilter()
    SecretFilter.register_secret(cfg.mail.password)

    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = []

    error_handler = FileHandler(cfg.log_dir / ERROR_LOG, encoding="utf-8")
    error_handler.setLevel(logging.ERROR)
    handlers.append(error_handler)

    combined_handler = FileHandler(cfg.log_dir / COMBINED_LOG, encoding="utf-8")
    combined_handler.setLevel(level)
    handlers.append(combined_handler)

    if not cfg.production:
        console = StreamHandler()
        console.setLevel(level)
        handlers.append(console)

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(secret_filter)
        root.addHandler(handler)

    # uvicorn loggers propagate into the root handlers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.setLevel(level)
        lg.propagate = True


__all__ = ["SecretFilter", "init_logging", "ERROR_LOG", "COMBINED_LOG"]
