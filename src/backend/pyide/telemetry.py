"""Logging and OpenTelemetry setup for tracing and observability."""

import logging
import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Span attribute keys
SPAN_ATTRIBUTES = {
    "RUN": {
        "active_file": "run.active_file",
        "file_count": "run.file_count",
        "status": "run.status",
        "exit_code": "run.exit_code",
    },
    "ENGINE": {
        "backend": "engine.backend",
        "state": "engine.state",
    },
}


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if getattr(root, "_pyide_configured", False):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    root.addHandler(handler)
    setattr(root, "_pyide_configured", True)


def setup_tracer(service_name: str = "pyide-backend", app=None) -> trace.Tracer:
    """
    Set up OpenTelemetry tracing.

    Environment variables:
    - OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP endpoint (e.g., http://localhost:4318/v1/traces)
    - OTEL_EXPORTER_OTLP_HEADERS: comma-separated key=value pairs
    - OTEL_SERVICE_NAME / OTEL_SERVICE_VERSION: resource overrides
    - OTEL_CONSOLE_EXPORTER: also print spans to stdout
    """
    resource = Resource.create({
        SERVICE_NAME: os.getenv("OTEL_SERVICE_NAME", service_name),
        SERVICE_VERSION: os.getenv("OTEL_SERVICE_VERSION", "0.1.0"),
        "environment": os.getenv("ENVIRONMENT", "development"),
    })

    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    exporters_configured = 0

    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if otlp_endpoint:
        try:
            headers = {}
            for header_pair in os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "").split(","):
                if "=" in header_pair:
                    key, value = header_pair.strip().split("=", 1)
                    headers[key] = value

            otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers, timeout=10)
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            log.info(f"[telemetry] OTLP exporter configured: {otlp_endpoint}")
            exporters_configured += 1
        except Exception as e:
            log.warning(f"[telemetry] OTLP exporter failed: {e}")

    if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        log.info("[telemetry] Console exporter configured")
        exporters_configured += 1

    if exporters_configured == 0:
        log.warning("[telemetry] No exporters configured; spans are recorded but not exported")

    if app is not None:
        setup_auto_instrumentation(app)

    log.info(f"[telemetry] Tracer setup complete for service: {service_name}")
    return trace.get_tracer(__name__)


def setup_auto_instrumentation(app) -> None:
    """Instrument the FastAPI app's routes."""
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        FastAPIInstrumentor.instrument_app(app)
        log.debug("[telemetry] FastAPI instrumentation enabled")
    except Exception as e:
        log.warning(f"[telemetry] FastAPI instrumentation failed: {e}")


def get_tracer() -> trace.Tracer:
    """Tracer from the global provider (a no-op tracer until setup_tracer runs)."""
    return trace.get_tracer("pyide")


def set_run_span_attributes(
    span: Optional[trace.Span],
    active_file: str,
    file_count: int,
    backend: str,
    engine_state: str,
):
    """Set run request attributes on a span."""
    if span is None:
        return

    span.set_attribute(SPAN_ATTRIBUTES["RUN"]["active_file"], active_file)
    span.set_attribute(SPAN_ATTRIBUTES["RUN"]["file_count"], file_count)
    span.set_attribute(SPAN_ATTRIBUTES["ENGINE"]["backend"], backend)
    span.set_attribute(SPAN_ATTRIBUTES["ENGINE"]["state"], engine_state)


def handle_span_error(span: Optional[trace.Span], exception: Exception):
    """Handle errors in spans with proper exception recording."""
    if span is None:
        return

    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


def handle_span_success(span: Optional[trace.Span], status: str, exit_code: Optional[int] = None):
    """Mark span as successful and record how the run ended."""
    if span is None:
        return

    span.set_attribute(SPAN_ATTRIBUTES["RUN"]["status"], status)
    if exit_code is not None:
        span.set_attribute(SPAN_ATTRIBUTES["RUN"]["exit_code"], exit_code)
    span.set_status(Status(StatusCode.OK))
