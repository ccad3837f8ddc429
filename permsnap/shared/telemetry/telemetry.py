"""OpenTelemetry setup for snapshot workers.

One tracer provider per process, created from Settings the first time a
worker context opens. Store reads (SQLAlchemy), cache pipelines (Redis)
and log records (trace ids) are instrumented so they nest under the
``permsnap.run_permission_snapshot`` span.
"""

import logging
import threading

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from sqlalchemy.ext.asyncio import AsyncEngine

from permsnap.core.config import Settings

logger = logging.getLogger(__name__)

SERVICE_NAMESPACE = "permsnap"
WORKER_COMPONENT = "snapshot-worker"


def build_resource(settings: Settings) -> Resource:
    """Resource attributes identifying this snapshot worker."""
    return Resource(
        attributes={
            SERVICE_NAME: settings.app_name,
            SERVICE_VERSION: settings.app_version,
            "service.namespace": SERVICE_NAMESPACE,
            "deployment.environment": settings.telemetry_environment,
            "permsnap.component": WORKER_COMPONENT,
            "permsnap.snapshot.sla_seconds": settings.snapshot_sla_seconds,
        }
    )


def build_exporter(settings: Settings) -> SpanExporter | None:
    """Exporter for settings.telemetry_exporter; None means spans are not exported."""
    exporter_type = settings.telemetry_exporter
    if exporter_type == "none":
        return None
    if exporter_type == "otlp":
        endpoint = settings.telemetry_otlp_endpoint
        if endpoint:
            return OTLPSpanExporter(endpoint=endpoint, insecure=endpoint.startswith("http://"))
        logger.warning("TELEMETRY_OTLP_ENDPOINT not set, falling back to console exporter")
    elif exporter_type != "console":
        logger.warning("Unknown exporter type '%s', using console", exporter_type)
    return ConsoleSpanExporter()


class SnapshotTelemetry:
    """Tracer provider and instrumentation for one worker process."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.enabled = settings.telemetry_enabled
        self.tracer_provider: TracerProvider | None = None

    def start(self) -> TracerProvider | None:
        """Install the global tracer provider and instrument Redis and logging.

        Returns None when telemetry is disabled or setup fails; snapshot
        runs proceed untraced in both cases.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        try:
            provider = TracerProvider(
                resource=build_resource(self.settings),
                sampler=ParentBased(TraceIdRatioBased(self.settings.telemetry_sample_rate)),
            )
            exporter = build_exporter(self.settings)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
            self.tracer_provider = provider
            RedisInstrumentor().instrument(tracer_provider=provider)
            LoggingInstrumentor().instrument(tracer_provider=provider, set_logging_format=True)
        except Exception as e:
            logger.exception("Failed to initialize telemetry: %s", e)
            return None
        logger.info(
            "Telemetry started for %s %s (exporter=%s)",
            self.settings.app_name,
            self.settings.app_version,
            self.settings.telemetry_exporter,
        )
        return provider

    def instrument_sqlalchemy(self, engine: AsyncEngine) -> None:
        """Trace store queries; called once the engine exists."""
        if self.tracer_provider is None:
            return
        try:
            SQLAlchemyInstrumentor().instrument(
                engine=engine.sync_engine,
                tracer_provider=self.tracer_provider,
            )
        except Exception as e:
            logger.exception("Failed to instrument SQLAlchemy: %s", e)

    def shutdown(self) -> None:
        """Flush pending spans and stop the provider."""
        if self.tracer_provider is None:
            return
        try:
            self.tracer_provider.shutdown()
        except Exception as e:
            logger.exception("Error during telemetry shutdown: %s", e)
        self.tracer_provider = None


_telemetry: SnapshotTelemetry | None = None
_telemetry_lock = threading.RLock()


def get_telemetry() -> SnapshotTelemetry | None:
    """Return the process telemetry, or None before setup_telemetry_from_settings."""
    with _telemetry_lock:
        return _telemetry


def setup_telemetry_from_settings(settings: Settings) -> SnapshotTelemetry:
    """Start telemetry once per process; later calls return the same instance."""
    global _telemetry
    with _telemetry_lock:
        if _telemetry is None:
            telemetry = SnapshotTelemetry(settings)
            telemetry.start()
            _telemetry = telemetry
        return _telemetry


def shutdown_telemetry() -> None:
    """Flush and forget the process telemetry (end of a script run)."""
    global _telemetry
    with _telemetry_lock:
        if _telemetry is not None:
            _telemetry.shutdown()
            _telemetry = None
