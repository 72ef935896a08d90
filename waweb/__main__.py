"""Executable entrypoint for the WhatsApp Web relay."""

from __future__ import annotations

import uvicorn

from config import waweb_config

from .logs import init_logging


def main() -> None:
    cfg = waweb_config()
    init_logging(cfg)
    uvicorn.run(
        "waweb.api:create_app",
        host="0.0.0.0",
        port=cfg.port,
        factory=True,
        workers=1,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
