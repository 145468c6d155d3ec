"""Tracing and log correlation for job polling.

A polling run is one ``job.poll`` span; every status call inside it is a
child ``job.poll_attempt`` span.  Log lines emitted while either span is
current carry the trace ids plus the job id and attempt number.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from coderag_client.core.config import Settings

POLL_SPAN = "job.poll"
POLL_ATTEMPT_SPAN = "job.poll_attempt"

ATTR_JOB_ID = "job.id"
ATTR_JOB_ATTEMPT = "job.attempt"
ATTR_JOB_STATUS = "job.status"
ATTR_POLL_MAX_ATTEMPTS = "job.max_attempts"
ATTR_POLL_OUTCOME = "job.poll_outcome"
ATTR_POLL_ATTEMPTS = "job.attempts"

RESOURCE_POLL_MAX_ATTEMPTS = "coderag.poll.max_attempts"
RESOURCE_POLL_INTERVAL_SECONDS = "coderag.poll.interval_seconds"

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s "
    "job_id=%(job_id)s attempt=%(job_attempt)s %(message)s"
)

_HTTPX_INSTRUMENTOR = HTTPXClientInstrumentor()
_NO_TRACE_ID = "0" * 32
_NO_SPAN_ID = "0" * 16


class PollContextFilter(logging.Filter):
    """Stamp trace and poll context from the current span onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        context = span.get_span_context()
        attributes: Mapping[str, object] = getattr(span, "attributes", None) or {}
        if context.is_valid:
            record.trace_id = format(context.trace_id, "032x")
            record.span_id = format(context.span_id, "016x")
        else:
            record.trace_id = _NO_TRACE_ID
            record.span_id = _NO_SPAN_ID
        record.job_id = attributes.get(ATTR_JOB_ID, "-")
        record.job_attempt = attributes.get(ATTR_JOB_ATTEMPT, "-")
        return True


def configure_client_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in root.handlers:
        if not any(isinstance(existing, PollContextFilter) for existing in handler.filters):
            handler.addFilter(PollContextFilter())


def build_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: settings.otel_service_name,
            DEPLOYMENT_ENVIRONMENT: settings.environment,
            RESOURCE_POLL_MAX_ATTEMPTS: settings.poll_max_attempts,
            RESOURCE_POLL_INTERVAL_SECONDS: settings.poll_interval_seconds,
        }
    )


def build_tracer_provider(settings: Settings, *, exporter: SpanExporter | None = None) -> TracerProvider:
    """Tracer provider for poll spans.

    An explicit ``exporter`` is attached synchronously.  Otherwise spans are
    batched to the configured OTLP endpoint, or kept local when none is set;
    OTLP headers come from the standard ``OTEL_EXPORTER_OTLP_HEADERS``.
    """
    provider = TracerProvider(
        resource=build_resource(settings),
        sampler=TraceIdRatioBased(settings.otel_trace_sample_ratio),
    )
    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    elif settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    else:
        logging.getLogger(__name__).info(
            "no OTLP endpoint configured; poll spans stay local for service=%s",
            settings.otel_service_name,
        )
    return provider


def setup_client_telemetry(settings: Settings) -> TracerProvider | None:
    if not settings.otel_enabled:
        return None
    provider = build_tracer_provider(settings)
    trace.set_tracer_provider(provider)
    _HTTPX_INSTRUMENTOR.instrument()
    return provider


def shutdown_client_telemetry(provider: TracerProvider | None) -> None:
    if provider is None:
        return
    _HTTPX_INSTRUMENTOR.uninstrument()
    provider.force_flush()
    provider.shutdown()
