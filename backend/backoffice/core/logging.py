"""JSON logging for the API.

Every record is emitted as one JSON object per line. Workflow code passes
structured fields through ``extra=``; the request id of the current HTTP call
is attached to every record logged while serving it.
"""
from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


EXTRA_KEYS = (
    "request_id",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "invoice_id",
    "invoice_number",
    "item_count",
    "attempt",
    "provider",
)

_current_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = _current_request_id.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {key: getattr(record, key) for key in EXTRA_KEYS if getattr(record, key, None) is not None}
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one ``request`` line per call and echoes ``X-Request-Id``."""

    def __init__(self, app, logger_name: str = "request") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = _current_request_id.set(request_id)
        fields = {"path": request.url.path, "method": request.method}
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            fields["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
            self.logger.exception("unhandled_exception", extra=fields)
            raise
        finally:
            _current_request_id.reset(token)

        fields["status_code"] = response.status_code
        fields["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        self.logger.info("request", extra={"request_id": request_id, **fields})
        response.headers["X-Request-Id"] = request_id
        return response
