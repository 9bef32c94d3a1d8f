"""
Logging for the API and the worker.

Call sites attach structured fields as extra={"payload": {...}}; both
formats render them after the event text.
"""

from __future__ import annotations

import logging
import sys

import orjson

from .config import settings


def _payload(record: logging.LogRecord) -> dict:
    payload = getattr(record, "payload", None)
    return payload if isinstance(payload, dict) else {}


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            **_payload(record),
        }
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(line, default=str).decode()


class KeyValueFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = " ".join(f"{k}={v}" for k, v in _payload(record).items())
        return f"{text} {fields}" if fields else text


def setup_logging() -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format.lower() == "text":
        handler.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(JsonLineFormatter())
    root.addHandler(handler)
