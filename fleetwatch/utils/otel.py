"""
OpenTelemetry + logging setup for fleetwatch.

- Root logging format shared with the rest of the stack.
- Optional OTLP exporter (gRPC) to a collector (FLEETWATCH_OTEL_ENABLED).
- Instruments FastAPI + logging + outgoing HTTP calls (RPC, metrics,
  GitHub / Docker Hub lookups all go through requests).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)


def setup_otel(app: FastAPI) -> None:
    """
    Configure OpenTelemetry for the fleetwatch service.

    Reads OTLP endpoint from:
      - OTEL_EXPORTER_OTLP_ENDPOINT (default: http://localhost:4317)

    With FLEETWATCH_OTEL_ENABLED unset only logging is configured; spans
    are still created but go to the no-op default provider.
    """
    if not settings.OTEL_ENABLED:
        setup_logging()
        return

    # 1) TracerProvider with resource
    resource = Resource.create(
        {
            "service.name": settings.SERVICE_NAME,
            "service.version": "0.1.0",
            "fleetwatch.network": settings.NETWORK,
            "fleetwatch.project": settings.PROJECT,
        }
    )

    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    # 2) OTLP gRPC exporter
    span_exporter = OTLPSpanExporter(
        endpoint=settings.OTEL_ENDPOINT,
        insecure=True,
    )
    provider.add_span_processor(BatchSpanProcessor(span_exporter))

    # 3) Instrument FastAPI, logging, and outgoing HTTP
    FastAPIInstrumentor().instrument_app(app)

    LoggingInstrumentor().instrument(
        set_logging_format=True,
    )

    RequestsInstrumentor().instrument()

    # 4) Root logging level
    setup_logging()
