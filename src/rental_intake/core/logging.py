from __future__ import annotations

import contextvars
import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

_batch_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "batch_id", default=None
)
_document_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "document_id", default=None
)

_configured = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        if ts.endswith("+00:00"):
            ts = ts[:-6] + "Z"
        payload: dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            for key, value in fields.items():
                if value is None:
                    continue
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging._nameToLevel.get(level_name, logging.INFO)
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger("rental_intake")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def set_batch_context(batch_id: str | None) -> contextvars.Token:
    return _batch_id_var.set(batch_id)


def reset_batch_context(token: contextvars.Token) -> None:
    _batch_id_var.reset(token)


def set_document_context(document_id: str | None) -> contextvars.Token:
    return _document_id_var.set(document_id)


def reset_document_context(token: contextvars.Token) -> None:
    _document_id_var.reset(token)


def _merge_fields(fields: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    batch_id = _batch_id_var.get()
    if batch_id:
        payload["batch_id"] = batch_id
    document_id = _document_id_var.get()
    if document_id:
        payload["document_id"] = document_id
    for key, value in fields.items():
        if value is None:
            continue
        payload[key] = value
    return payload


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    payload = _merge_fields(fields)
    logger.log(level, event, extra={"event": event, "fields": payload})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    payload = _merge_fields(fields)
    logger.exception(event, extra={"event": event, "fields": payload})


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
