"""OpenTelemetry tracing and metrics for ado-sync."""

import logging
import os
import time
from contextlib import contextmanager

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes

from .config import TelemetryConfig

logger = logging.getLogger(__name__)


class TelemetryManager:
    """
    Sets up OpenTelemetry providers and records ado-sync metrics.

    When ``config.enabled`` is false every method is a no-op, so callers can
    record unconditionally.
    """

    def __init__(self, config: TelemetryConfig):
        self.config = config
        self.tracer: trace.Tracer | None = None
        self.meter: metrics.Meter | None = None
        self._initialized = False

        self._api_call_counter = None
        self._api_call_duration = None
        self._sync_item_counter = None
        self._rate_limit_wait_counter = None

        if config.enabled:
            self._setup_telemetry()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _setup_telemetry(self):
        """Set up OpenTelemetry providers and exporters."""
        try:
            resource = Resource(
                attributes={
                    ResourceAttributes.SERVICE_NAME: self.config.service_name,
                    ResourceAttributes.SERVICE_VERSION: self.config.service_version,
                    ResourceAttributes.PROCESS_PID: os.getpid(),
                }
            )

            self._setup_tracing(resource)

            if self.config.metrics_enabled:
                self._setup_metrics(resource)

            RequestsInstrumentor().instrument()

            self._initialized = True
            logger.info("Telemetry initialized successfully")

        except Exception as e:
            # Telemetry failures never stop a sync run
            logger.error(f"Failed to initialize telemetry: {e}")
            self.config.enabled = False

    def _setup_tracing(self, resource: Resource):
        tracer_provider = TracerProvider(
            resource=resource, sampler=TraceIdRatioBased(self.config.trace_sampling_rate)
        )

        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        if otlp_endpoint:
            tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )

        trace.set_tracer_provider(tracer_provider)
        self.tracer = trace.get_tracer(__name__)

    def _setup_metrics(self, resource: Resource):
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")
        if not otlp_endpoint:
            return

        metric_reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=otlp_endpoint),
            export_interval_millis=30000,
        )
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[metric_reader]))
        self.meter = metrics.get_meter(__name__)
        self._create_metrics()

    def _create_metrics(self):
        if not self.meter:
            return

        self._api_call_counter = self.meter.create_counter(
            name="ado_sync_api_calls_total",
            description="Total number of Azure DevOps API calls",
            unit="1",
        )
        self._api_call_duration = self.meter.create_histogram(
            name="ado_sync_api_call_duration_seconds",
            description="Duration of Azure DevOps API calls in seconds",
            unit="s",
        )
        self._sync_item_counter = self.meter.create_counter(
            name="ado_sync_items_total",
            description="Work items processed by push, pull and import",
            unit="1",
        )
        self._rate_limit_wait_counter = self.meter.create_counter(
            name="ado_sync_rate_limit_waits_total",
            description="Times the client paused for the rate limiter or a 429",
            unit="1",
        )

    @contextmanager
    def trace_api_call(self, operation: str, **attributes):
        """
        Context manager for tracing one API call.

        Args:
            operation: Name of the operation
            **attributes: Additional span attributes
        """
        if not self._initialized or not self.tracer:
            yield None
            return

        with self.tracer.start_as_current_span(f"ado_sync_{operation}") as span:
            span.set_attribute("ado.operation", operation)
            for key, value in attributes.items():
                span.set_attribute(key, value)

            start_time = time.time()
            status = "success"
            try:
                yield span
            except Exception as e:
                status = "error"
                span.record_exception(e)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise
            finally:
                if self._api_call_counter:
                    self._api_call_counter.add(1, {"operation": operation, "status": status})
                if self._api_call_duration:
                    self._api_call_duration.record(
                        time.time() - start_time, {"operation": operation}
                    )

    def record_sync_outcome(self, operation: str, action: str, success: bool):
        """Count one per-item result of a push, pull or import."""
        if not self._initialized or not self._sync_item_counter:
            return

        self._sync_item_counter.add(
            1, {"operation": operation, "action": action, "success": str(success).lower()}
        )

    def record_rate_limit_wait(self, seconds: float, reason: str):
        """Count a pause taken by the rate limiter or after a 429."""
        if not self._initialized or not self._rate_limit_wait_counter:
            return

        self._rate_limit_wait_counter.add(1, {"reason": reason, "seconds": int(seconds)})

    def shutdown(self):
        """Shutdown telemetry providers."""
        if not self._initialized:
            return

        try:
            provider = trace.get_tracer_provider()
            if hasattr(provider, "shutdown"):
                provider.shutdown()

            meter_provider = metrics.get_meter_provider()
            if hasattr(meter_provider, "shutdown"):
                meter_provider.shutdown()

            logger.info("Telemetry shutdown complete")

        except Exception as e:
            logger.error(f"Error during telemetry shutdown: {e}")


_telemetry_manager: TelemetryManager | None = None


def initialize_telemetry(config: TelemetryConfig) -> TelemetryManager:
    """Create the process-wide telemetry manager."""
    global _telemetry_manager
    _telemetry_manager = TelemetryManager(config)
    return _telemetry_manager


def get_telemetry_manager() -> TelemetryManager:
    """Return the process-wide telemetry manager, creating a disabled one if needed."""
    global _telemetry_manager
    if _telemetry_manager is None:
        _telemetry_manager = TelemetryManager(TelemetryConfig(enabled=False))
    return _telemetry_manager


def shutdown_telemetry():
    """Shutdown the process-wide telemetry manager."""
    global _telemetry_manager
    if _telemetry_manager:
        _telemetry_manager.shutdown()
        _telemetry_manager = None
