"""JSON-lines logging shared by the agent server modules.

Call sites log an event name as the message and put structured fields under
``extra={"extra": {...}}``; the formatter flattens them into one JSON object.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

_ROOT = "relay"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.propagate = False
    root.setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    if not logging.getLogger(_ROOT).handlers:
        configure_logging()
    return logging.getLogger(f"{_ROOT}.{name}")
