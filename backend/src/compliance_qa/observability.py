"""Observability helpers for tracing, metrics, and logging."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from .config import settings

logger = logging.getLogger("compliance_qa")
logging.basicConfig(
    level=settings.observability.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s | %(message)s",
)

if settings.observability.enable_tracing:
    resource = Resource.create({"service.name": "compliance-doc-qa"})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.observability.otlp_endpoint))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
tracer = trace.get_tracer(__name__)

REQUEST_LATENCY = Histogram(
    "compliance_qa_stage_latency_ms",
    "Latency of pipeline stages",
    labelnames=("stage",),
    buckets=(50, 100, 250, 500, 1000, 2000, 5000, 15000),
)
RETRIEVAL_FALLBACKS = Counter(
    "compliance_qa_retrieval_fallback_total",
    "Queries answered through the lexical fallback",
    labelnames=("reason",),
)
CANDIDATES_PER_QUERY = Histogram(
    "compliance_qa_candidates_per_query",
    "Documents surviving deduplication per query",
    buckets=(0, 1, 2, 3, 5),
)
GENERATION_OUTCOMES = Counter(
    "compliance_qa_generation_total",
    "Generation calls by outcome",
    labelnames=("outcome",),
)


@contextmanager
def traced_span(name: str) -> Iterator[None]:
    start = perf_counter()
    try:
        with tracer.start_as_current_span(name):
            yield
    finally:
        REQUEST_LATENCY.labels(name).observe((perf_counter() - start) * 1000)
