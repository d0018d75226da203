from __future__ import annotations

import json
import logging
import time
from logging.handlers import RotatingFileHandler
from typing import Any

from ..config import LoggingSettings

# keys owned by the formatter; event fields may not overwrite them
_RESERVED = ("ts", "level", "logger", "msg")


def _clip(value: Any, limit: int) -> Any:
    if isinstance(value, str) and len(value) > limit:
        return f"{value[:limit]}...(+{len(value) - limit} chars)"
    return value


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: ``ts``/``level``/``logger``/``msg`` plus the ``extra={"event": {...}}`` fields.

    Ingested messages and stack traces can be tens of kilobytes, so string
    values longer than ``max_field_chars`` are clipped.
    """

    converter = time.gmtime

    def __init__(self, *, max_field_chars: int = 512) -> None:
        super().__init__()
        self.max_field_chars = max_field_chars

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": _clip(record.getMessage(), self.max_field_chars),
        }
        event = getattr(record, "event", None)
        if isinstance(event, dict):
            for key, value in event.items():
                name = f"event_{key}" if key in _RESERVED else key
                payload[name] = _clip(value, self.max_field_chars)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def setup_logging(
    cfg: LoggingSettings,
    logger_name: str = "errorledger",
    *,
    stream: bool = True,
) -> logging.Logger:
    """Configure the package logger; ``errorledger.store`` and ``errorledger.ingestion`` inherit its handlers.

    Safe to call repeatedly: handlers from an earlier call are closed first.
    """
    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    formatter: logging.Formatter
    if cfg.jsonl:
        formatter = JsonLineFormatter(max_field_chars=cfg.max_field_chars)
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            filename=cfg.log_path,
            maxBytes=cfg.max_bytes,
            backupCount=cfg.backup_count,
            encoding="utf-8",
        )
    ]
    if stream:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
