"""Optional OpenTelemetry tracing for the exploration API and MCP server.

Spans go to an OTLP collector over gRPC. FastAPI and FastMCP both run on
Starlette, so one Starlette instrumentation covers both entry points.
"""

from __future__ import annotations

import logging
import os

from .config.settings import Settings
from .config.settings import settings as default_settings

logger = logging.getLogger(__name__)

_active = False


def _tracer_provider(cfg: Settings):
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.semconv.resource import ResourceAttributes

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: cfg.otel_service_name,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: os.getenv("ENVIRONMENT", "development"),
            ResourceAttributes.SERVICE_VERSION: os.getenv("APP_VERSION", "unknown"),
        }
    )
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=cfg.otel_endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def init_telemetry(cfg: Settings | None = None) -> bool:
    """Install the tracer provider and instrument Starlette.

    Returns whether tracing is active; ``/healthz`` reports the answer.
    Calling it again once tracing is up is a no-op.
    """
    global _active
    cfg = cfg or default_settings
    if _active:
        return True
    if not cfg.otel_enabled:
        logger.info("Tracing disabled (OTEL_ENABLED=false)")
        return False
    if not cfg.otel_endpoint:
        logger.warning("OTEL_ENABLED=true but OTEL_EXPORTER_OTLP_ENDPOINT is empty; tracing stays off")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.instrumentation.starlette import StarletteInstrumentor

        trace.set_tracer_provider(_tracer_provider(cfg))
        StarletteInstrumentor().instrument()
    except ImportError as e:
        logger.error(f"Tracing requested but OpenTelemetry is missing ({e}); install roam-explorer[telemetry]")
        return False
    except Exception as e:
        logger.error(f"Failed to initialize OpenTelemetry: {e}")
        return False

    _active = True
    logger.info(f"Tracing {cfg.otel_service_name} to {cfg.otel_endpoint}")
    return True


def shutdown_telemetry() -> None:
    """Flush and close the tracer provider installed by ``init_telemetry``."""
    global _active
    if not _active:
        return
    _active = False
    try:
        from opentelemetry import trace

        provider = trace.get_tracer_provider()
        if hasattr(provider, "shutdown"):
            provider.shutdown()
            logger.info("Tracer provider shut down")
    except Exception as e:
        logger.warning(f"Error shutting down OpenTelemetry: {e}")
