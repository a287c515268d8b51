from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    raw = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    numeric = logging.getLevelName(raw)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
    root.setLevel(numeric)
    # uvicorn access log stays at WARNING or above
    logging.getLogger("uvicorn.access").setLevel(max(numeric, logging.WARNING))
