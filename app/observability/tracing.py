"""
Distributed Tracing with OpenTelemetry.

Auth operations run inside "auth.<operation>" spans tagged with the role, and
principal or session IDs once known. Token values never become span
attributes.
"""

from typing import Any
from uuid import UUID

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, Sampler, TraceIdRatioBased
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from app.config import settings

# Health probes and scrapes would otherwise dominate the trace volume
EXCLUDED_URLS = "health,metrics"


def build_sampler(sample_rate: float) -> Sampler:
    """Sample root spans at sample_rate; child spans follow their parent."""
    return ParentBased(root=TraceIdRatioBased(sample_rate))


def setup_tracing() -> None:
    """
    Configure OpenTelemetry tracing with OTLP export.

    Sets up:
    - TracerProvider with service resource and ratio sampler
    - OTLP exporter to collector
    """
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
        }
    )

    provider = TracerProvider(resource=resource, sampler=build_sampler(settings.trace_sample_rate))
    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otlp_endpoint,
        insecure=settings.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """
    Instrument FastAPI application for automatic tracing.

    Must be called after app creation.
    """
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """
    Instrument an async SQLAlchemy engine for automatic query tracing.
    """
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer(name: str) -> Tracer:
    """
    Get a tracer instance for manual span creation.

    Usage:
        tracer = get_tracer(__name__)
        with tracer.start_as_current_span("auth.refresh") as span:
            set_auth_attributes(span, "member")
    """
    return trace.get_tracer(name)


def set_auth_attributes(
    span: Span,
    role: str,
    principal_id: UUID | None = None,
    session_id: UUID | None = None,
) -> None:
    """Tag a span with the auth role and, when known, principal and session IDs."""
    span.set_attribute("auth.role", role)
    if principal_id is not None:
        span.set_attribute("auth.principal_id", str(principal_id))
    if session_id is not None:
        span.set_attribute("auth.session_id", str(session_id))


def set_span_error(span: Span, error: Exception) -> None:
    """Mark span as error and record exception."""
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)
