from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from galtrans.app.config import app_paths

_RESERVED_FIELDS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_FIELDS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _level_from_env(default: int) -> int:
    raw = os.getenv("GALTRANS_LOG_LEVEL", "").strip().upper()
    if not raw:
        return default
    value = logging.getLevelName(raw)
    return value if isinstance(value, int) else default


def _reset_handlers(logger: logging.Logger) -> None:
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()


def setup_app_logger(
    name: str = "galtrans",
    *,
    level: int = logging.INFO,
    console: bool = False,
    capture_http: bool = False,
) -> tuple[logging.Logger, Path, Path]:
    """
    One JSON line per record in <config dir>/logs/galtrans.log (1 MB x 5).
    Module loggers under `name` inherit the handlers. GALTRANS_LOG_LEVEL overrides `level`.
    console=True echoes warnings and errors to stderr; capture_http=True moves
    werkzeug's per-request lines from stderr into the file.
    """
    log_dir = app_paths().log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "galtrans.log"

    handler = RotatingFileHandler(
        filename=log_path,
        maxBytes=1_000_000,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(JsonLineFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))

    logger = logging.getLogger(name)
    logger.setLevel(_level_from_env(level))
    logger.propagate = False
    _reset_handlers(logger)
    logger.addHandler(handler)

    if console:
        stream = logging.StreamHandler()
        stream.setLevel(logging.WARNING)
        stream.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(stream)

    if capture_http:
        http_logger = logging.getLogger("werkzeug")
        http_logger.setLevel(logging.INFO)
        http_logger.propagate = False
        _reset_handlers(http_logger)
        http_logger.addHandler(handler)
    return logger, log_dir, log_path
