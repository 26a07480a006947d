"""Structured logging, request correlation and optional tracing for the gateway."""
from __future__ import annotations

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any, Callable, Iterable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

try:  # pragma: no cover - installed with the "otel" extra
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
except Exception:  # pragma: no cover - tracing stays off without the extra
    trace = None
    OTLPSpanExporter = None
    FastAPIInstrumentor = None
    Resource = None
    TracerProvider = None
    BatchSpanProcessor = None
    TraceIdRatioBased = None


REQUEST_ID_HEADER = "X-Request-ID"
_CORRELATION_HEADERS = (REQUEST_ID_HEADER, "X-Correlation-ID")
_BUOY_PATH = re.compile(r"^/buoys/(?P<device_id>[^/]+)")

_request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
_device_id_ctx: ContextVar[str | None] = ContextVar("device_id", default=None)

# Fields the filter stamps on every record, in output order.
CONTEXT_FIELDS = ("service", "request_id", "device_id", "trace_id", "span_id")
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"} | set(CONTEXT_FIELDS)

# Chatty libraries: httpx logs each of the three category reads at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def get_request_id() -> str | None:
    return _request_id_ctx.get()


def get_device_id() -> str | None:
    return _device_id_ctx.get()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Adopt or mint a request id and remember which buoy the request is about."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        request_id = next(
            (request.headers[name] for name in _CORRELATION_HEADERS if request.headers.get(name)),
            None,
        ) or uuid.uuid4().hex
        match = _BUOY_PATH.match(request.url.path)
        request_token = _request_id_ctx.set(request_id)
        device_token = _device_id_ctx.set(match.group("device_id") if match else None)
        try:
            response = await call_next(request)
        finally:
            _device_id_ctx.reset(device_token)
            _request_id_ctx.reset(request_token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _current_span_ids() -> tuple[str | None, str | None]:
    if trace is None:
        return None, None
    ctx = trace.get_current_span().get_span_context()
    if not ctx or not ctx.trace_id:
        return None, None
    return f"{ctx.trace_id:032x}", f"{ctx.span_id:016x}"


class ContextFilter(logging.Filter):
    """Stamp service name, request id, buoy id and the active span onto every record."""

    def __init__(self, service: str) -> None:
        super().__init__()
        self._service = service

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self._service
        record.request_id = getattr(record, "request_id", None) or get_request_id()
        record.device_id = getattr(record, "device_id", None) or get_device_id()
        record.trace_id, record.span_id = _current_span_ids()
        return True


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; context fields that are unset are left out."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        extra = {key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS}
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, default=str)


def _route_loggers(handler: logging.Handler, names: Iterable[str], level: int) -> None:
    for name in names:
        logger = logging.getLogger(name)
        logger.handlers = [handler]
        logger.setLevel(level)
        logger.propagate = False


def configure_logging(service: str, level: str = "INFO", *, stream: IO[str] | None = None) -> logging.Handler:
    """Send every log line (ours and uvicorn's) through one JSON handler."""

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(ContextFilter(service))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)
    _route_loggers(handler, _SERVER_LOGGERS, numeric_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, numeric_level))
    return handler


def _parse_header_pairs(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` as used by OTEL_EXPORTER_OTLP_HEADERS."""

    pairs: dict[str, str] = {}
    for item in (raw or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            pairs[key.strip()] = value.strip()
    return pairs


def _sample_ratio(value: Any) -> float:
    try:
        return max(min(float(value), 1.0), 0.0)
    except (TypeError, ValueError):
        return 1.0


def configure_tracing(
    *,
    service_name: str,
    service_version: str | None,
    otlp_endpoint: str,
    otlp_headers: str | None,
    sample_ratio: float = 1.0,
    app: FastAPI | None = None,
) -> bool:
    """Export spans over OTLP/gRPC; returns False when the otel extra is missing."""

    if trace is None or OTLPSpanExporter is None:
        logging.getLogger(__name__).warning("OpenTelemetry not installed; tracing disabled")
        return False
    attributes: dict[str, Any] = {"service.name": service_name}
    if service_version:
        attributes["service.version"] = service_version
    provider = TracerProvider(
        resource=Resource.create(attributes),
        sampler=TraceIdRatioBased(_sample_ratio(sample_ratio)),
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, headers=_parse_header_pairs(otlp_headers)))
    )
    trace.set_tracer_provider(provider)
    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
    return True


def attach_request_id(payload: dict[str, Any]) -> dict[str, Any]:
    request_id = get_request_id()
    if request_id:
        payload.setdefault("request_id", request_id)
    return payload


def configure_observability(
    app: FastAPI,
    *,
    service_name: str,
    service_version: str | None,
    log_level: str,
    otel_enabled: bool,
    otlp_endpoint: str,
    otlp_headers: str | None,
    otel_sample_ratio: float = 1.0,
) -> None:
    configure_logging(service_name, log_level)
    app.add_middleware(RequestIdMiddleware)
    if otel_enabled:
        configure_tracing(
            service_name=service_name,
            service_version=service_version,
            otlp_endpoint=otlp_endpoint,
            otlp_headers=otlp_headers,
            sample_ratio=otel_sample_ratio,
            app=app,
        )
