import logging

import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from shared.config.settings import Settings, get_settings

# Health checks and scrapes are not traced
UNTRACED_PATHS = "health,metrics"


def add_otel_ids(logger, log_method, event_dict):
    """Structlog processor: ties every log line to the active request span."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict


def service_context(service_name: str, environment: str):
    def add_service(logger, log_method, event_dict):
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("env", environment)
        return event_dict

    return add_service


def configure_logging(service_name: str, settings: Settings):
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            service_context(service_name, settings.ENVIRONMENT),
            add_otel_ids,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_tracing(app: FastAPI, service_name: str, version: str, settings: Settings):
    if not settings.OTLP_ENDPOINT:
        # Tracing disabled (local runs, tests)
        return

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: version,
        "deployment.environment": settings.ENVIRONMENT,
    })
    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True)))

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_PATHS)
    # Child spans for the BDV conciliation calls
    HTTPXClientInstrumentor().instrument()


def configure_metrics(app: FastAPI):
    # HTTP latency and status codes per route, scraped at /metrics
    Instrumentator(excluded_handlers=["/metrics", "/health"]).instrument(app).expose(app)


def setup_observability(app: FastAPI, service_name: str):
    """Logging, tracing and metrics for the storefront app. Call once, before serving."""
    settings = get_settings()
    configure_logging(service_name, settings)
    configure_tracing(app, service_name, app.version, settings)
    configure_metrics(app)
    structlog.get_logger(__name__).info(
        "observability_configured",
        tracing=bool(settings.OTLP_ENDPOINT),
        log_level=settings.LOG_LEVEL,
    )
