import logging
import time
import uuid

import sentry_sdk
from fastapi import FastAPI, Request
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import Settings

logger = logging.getLogger("app.http")

_provider: TracerProvider | None = None


def configure_logging(settings: Settings) -> None:
    root_logger = logging.getLogger()
    if any(getattr(h, "_json_handler", False) for h in root_logger.handlers):
        return
    handler = logging.StreamHandler()
    handler._json_handler = True
    handler.setFormatter(jsonlogger.JsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s'
    ))
    root_logger.setLevel(settings.log_level.upper())
    root_logger.addHandler(handler)


def configure_sentry(settings: Settings) -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=1.0,
        environment=settings.environment,
        release=settings.release,
        send_default_pii=False,
    )


def configure_tracing(app: FastAPI, settings: Settings) -> None:
    global _provider
    if _provider is None:
        _provider = TracerProvider(resource=Resource.create({
            "service.name": "rah-e-ayandeh-api",
            "service.version": "1.0.0",
            "deployment.environment": settings.environment,
        }))
        if settings.otlp_endpoint:
            _provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
            )
        trace.set_tracer_provider(_provider)
        LoggingInstrumentor().instrument(set_logging_format=False)
    FastAPIInstrumentor.instrument_app(app, tracer_provider=_provider)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Tags every request with an X-Request-ID and logs its outcome."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id
        started = time.perf_counter()

        logger.info(
            f"{request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "url": request.url.path,
                "ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
            },
        )
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
        logger.info(
            f"RESPONSE {response.status_code} {elapsed_ms}ms",
            extra={
                "request_id": request_id,
                "status_code": response.status_code,
                "response_time_ms": elapsed_ms,
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response
