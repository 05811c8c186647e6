"""
OpenTelemetry wiring for the instrumented variant.

Providers are built once by init_telemetry() and handed to the app
explicitly; nothing is registered as a global provider.
"""
import logging
from contextlib import contextmanager

from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as OTLPHTTPSpanExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

TRACER_NAME = "hello-service/tracer"
METER_NAME = "hello-service/meter"
FETCH_SPAN_NAME = "fetch-from-downstream"
REQUESTS_COUNTER_NAME = "requests-count"
PATH_KEY = "path"
DEFAULT_METRICS_INTERVAL = 5.0


class TelemetryError(Exception):
    """Tracer or metrics pipeline could not be set up."""


class NoopObserver:
    """Hooks the handler calls around each request.

    This base is the baseline variant: it records nothing and adds no
    headers. TelemetryObserver overrides both hooks.
    """

    def request_received(self, path):
        pass

    @contextmanager
    def fetch_span(self):
        yield {}


class TelemetryObserver(NoopObserver):
    """Counts requests and traces each downstream call."""

    def __init__(self, tracer, counter, propagator=None):
        self.tracer = tracer
        self.counter = counter
        self.propagator = propagator or TraceContextTextMapPropagator()

    def request_received(self, path):
        self.counter.add(1, {PATH_KEY: path})

    @contextmanager
    def fetch_span(self):
        """Yield propagation headers for one downstream call.

        The span ends when the block exits, whatever the outcome; an
        exception is recorded on it and re-raised.
        """
        with self.tracer.start_as_current_span(FETCH_SPAN_NAME):
            headers = {}
            self.propagator.inject(headers)
            yield headers


class Telemetry:
    def __init__(self, tracer_provider, meter_provider):
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.tracer = tracer_provider.get_tracer(TRACER_NAME)
        self.meter = meter_provider.get_meter(METER_NAME)
        self.requests_counter = self.meter.create_counter(
            REQUESTS_COUNTER_NAME,
            unit="1",
            description="Requests handled, by path",
        )

    def observer(self):
        return TelemetryObserver(self.tracer, self.requests_counter)

    def shutdown(self):
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown()


def metrics_interval(settings):
    """Seconds between metric exports; empty means the default."""
    value = settings.metrics_export_interval or DEFAULT_METRICS_INTERVAL
    interval = float(value)
    if interval <= 0:
        raise ValueError(f"METRICS_EXPORT_INTERVAL must be positive, got {value!r}")
    return interval


def build_span_exporter(settings):
    if settings.span_exporter_protocol == "grpc":
        endpoint = f"{settings.span_exporter_host}:{settings.span_exporter_port}"
        return OTLPSpanExporter(endpoint=endpoint, insecure=True)
    return OTLPHTTPSpanExporter(endpoint=settings.span_exporter_url)


def init_telemetry(settings, span_exporter=None, metric_reader=None):
    """Build the tracer and meter providers for the instrumented variant."""
    resource = Resource.create({"service.name": settings.service_name})

    try:
        if span_exporter is None:
            span_exporter = build_span_exporter(settings)
        if metric_reader is None:
            metric_reader = PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=metrics_interval(settings) * 1000,
            )
    except Exception as exc:
        raise TelemetryError(f"could not initialize exporters: {exc}") from exc

    tracer_provider = TracerProvider(resource=resource, sampler=ALWAYS_ON)
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])

    logger.info("exporting spans for %s via %s", settings.service_name,
                type(span_exporter).__name__)
    return Telemetry(tracer_provider, meter_provider)
