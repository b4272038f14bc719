import json
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from threading import Lock

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from score_relay.config import settings

_HANDLER_NAME = "score_relay"

# Context attached through ``extra=`` by the relay, the adapter and the middleware.
_CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "upload_id",
    "event_id",
    "upstream_status",
    "upstream_body",
    "error",
)


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in _CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: str | None = None, json_lines: bool | None = None) -> None:
    root = logging.getLogger()
    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if settings.log_json if json_lines is None else json_lines:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(handler)
    root.setLevel(getattr(logging, (level or settings.log_level).upper(), logging.INFO))


@dataclass
class RelayMetrics:
    """Counters for prediction outcomes and for each upstream step's responses."""

    predictions: Counter = field(default_factory=Counter)
    upstream_responses: Counter = field(default_factory=Counter)
    _lock: Lock = field(default_factory=Lock)

    def record_prediction(self, outcome: str) -> None:
        if not settings.enable_metrics:
            return
        with self._lock:
            self.predictions[outcome] += 1

    def record_upstream(self, step: str, status_code: int | None) -> None:
        # status_code is None when the call never got a response
        if not settings.enable_metrics:
            return
        status = "transport_error" if status_code is None else str(status_code)
        with self._lock:
            self.upstream_responses[(step, status)] += 1

    def render_prometheus(self) -> str:
        with self._lock:
            lines = ["# TYPE relay_predictions_total counter"]
            lines.extend(
                f'relay_predictions_total{{outcome="{outcome}"}} {count}'
                for outcome, count in sorted(self.predictions.items())
            )
            lines.append("# TYPE relay_upstream_responses_total counter")
            lines.extend(
                f'relay_upstream_responses_total{{step="{step}",status="{status}"}} {count}'
                for (step, status), count in sorted(self.upstream_responses.items())
            )
        return "\n".join(lines) + "\n"


metrics_registry = RelayMetrics()
_access_logger = logging.getLogger("score_relay.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every request with an ``x-request-id`` and writes one access log line."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            _access_logger.exception("request_failed", extra=context)
            raise

        response.headers["x-request-id"] = request_id
        _access_logger.info(
            "request_complete",
            extra={
                **context,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            },
        )
        return response
