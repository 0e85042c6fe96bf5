# telemetry.py — Request and query tracing for TaskHub
"""
Spans for each HTTP request and each SQL statement, shipped over OTLP.

Tracing is switched on by OTEL_EXPORTER_OTLP_ENDPOINT and needs the
`telemetry` extra installed. Without either, setup_telemetry returns None
and the API runs untraced.
"""
import os
import logging

logger = logging.getLogger("taskhub.telemetry")

OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
# /health is polled by load balancers; tracing it only adds noise
UNTRACED_PATHS = "health"


def _resource_attributes(version: str) -> dict:
    return {
        "service.name": os.getenv("OTEL_SERVICE_NAME", "taskhub-api"),
        "service.version": version,
        "deployment.environment": os.getenv("ENVIRONMENT", "development"),
    }


def _tracer_provider(version: str):
    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    provider = TracerProvider(resource=Resource.create(_resource_attributes(version)))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)))
    trace.set_tracer_provider(provider)
    return provider


def _trace_requests(app, provider) -> None:
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_PATHS, tracer_provider=provider)


def _trace_queries(engine, provider) -> None:
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    # Async engines are instrumented through their sync core
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)


def setup_telemetry(app=None, engine=None, version: str = "1.0.0"):
    """Trace the API app and the database engine. Returns the provider or None."""
    if not OTLP_ENDPOINT:
        logger.info("Tracing off: OTEL_EXPORTER_OTLP_ENDPOINT not set")
        return None

    try:
        provider = _tracer_provider(version)
        if app is not None:
            _trace_requests(app, provider)
        if engine is not None:
            _trace_queries(engine, provider)
    except ImportError as e:
        logger.warning(f"Tracing off: telemetry extra not installed ({e.name})")
        return None

    logger.info(f"Tracing requests and queries to {OTLP_ENDPOINT}")
    return provider
