"""OpenTelemetry configuration and setup."""

import logging
import os
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)


def get_service_resource() -> Resource:
    """Create OpenTelemetry resource with service identification.

    Returns:
        Resource with service name and environment attributes
    """
    service_name = os.getenv("OTEL_SERVICE_NAME", "menu-link-svc")
    environment = os.getenv("ENVIRONMENT", "development")

    return Resource.create(
        {
            "service.name": service_name,
            "deployment.environment": environment,
        }
    )


def setup_tracing(resource: Resource) -> None:
    """Configure OpenTelemetry tracing with an OTLP/HTTP exporter.

    Args:
        resource: Service resource for trace identification
    """
    # Spans go to the collector's OTLP/HTTP traces endpoint
    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")
    exporter = OTLPSpanExporter(endpoint=f"{otlp_endpoint}/v1/traces")

    # Batch spans before export
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter))

    # Register globally so @traced picks it up
    trace.set_tracer_provider(provider)

    logger.info(f"OpenTelemetry tracing configured with endpoint: {otlp_endpoint}")


def setup_metrics(resource: Resource) -> None:
    """Configure OpenTelemetry metrics with an OTLP/HTTP exporter.

    Args:
        resource: Service resource for metric identification
    """
    # Metrics go to the collector's OTLP/HTTP metrics endpoint
    otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")
    exporter = OTLPMetricExporter(endpoint=f"{otlp_endpoint}/v1/metrics")

    # Export once a minute
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=60000)
    provider = MeterProvider(resource=resource, metric_readers=[reader])

    # Register globally so the counters in metrics.py report through it
    metrics.set_meter_provider(provider)

    logger.info(f"OpenTelemetry metrics configured with endpoint: {otlp_endpoint}")


def setup_auto_instrumentation() -> None:
    """Configure automatic instrumentation for AWS SDK calls."""
    # DynamoDB calls (links, slug claims, visits, menus) go through botocore
    BotocoreInstrumentor().instrument()

    logger.info("Auto-instrumentation enabled for botocore")


def setup_observability(app: Any = None, enable_exporters: bool = True) -> None:
    """Initialize OpenTelemetry with tracing, metrics, and auto-instrumentation.

    Args:
        app: Optional FastAPI application to instrument
        enable_exporters: Whether to enable OTLP exporters (forced off when ENVIRONMENT=test)
    """
    # Never export from test runs
    environment = os.getenv("ENVIRONMENT", "development")
    if environment == "test":
        enable_exporters = False

    # Identify this service in every span and metric
    resource = get_service_resource()

    if enable_exporters:
        # Tracing
        setup_tracing(resource)

        # Metrics
        setup_metrics(resource)
    else:
        # Providers without exporters keep spans and instruments as no-ops
        trace.set_tracer_provider(TracerProvider(resource=resource))
        metrics.set_meter_provider(MeterProvider(resource=resource))

    # AWS SDK instrumentation
    setup_auto_instrumentation()

    # Incoming HTTP requests (dashboard API and /l/{slug} viewer)
    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI application instrumented")

    logger.info("OpenTelemetry observability fully configured")


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured JSON logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    # LOG_LEVEL wins over the argument
    level_str = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, level_str, logging.INFO)

    # One JSON object per log line
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        timestamp=True,
    )

    # Root logger level
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Drop handlers installed by the Lambda runtime or earlier calls
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Single stdout handler with JSON formatting
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # botocore is chatty at DEBUG and can log request payloads
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))

    logger.info(f"Structured JSON logging configured at {level_str} level")
