"""Monitoring and observability setup.

Traces and metrics are exported over OTLP/gRPC to the collector configured by
``OTEL_EXPORTER_OTLP_ENDPOINT``. With ``OTEL_ENABLED=false`` no SDK providers
are installed, so the tracer and instruments below resolve to the no-op
implementations of the OpenTelemetry API. Histograms recorded inside an
active span carry exemplars linking them to the originating trace.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
import pyroscope

from config import OTEL_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, PYROSCOPE_SERVER, SERVICE_NAME

logger = logging.getLogger(__name__)


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    if OTEL_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        tracer_provider = TracerProvider(resource=resource)
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        trace.set_tracer_provider(tracer_provider)

        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    if OTEL_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        otlp_metric_reader = PeriodicExportingMetricReader(
            otlp_metric_exporter,
            export_interval_millis=5000
        )

        meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[otlp_metric_reader]
        )
        metrics.set_meter_provider(meter_provider)

        logger.info("Metrics initialized with OTLP exporter")

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not OTEL_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


tracer = init_tracing()
meter = init_metrics()

# Catalog
product_views_counter = meter.create_counter(
    "storefront.products.views",
    description="Product catalog and detail views",
    unit="1"
)

cart_additions_counter = meter.create_counter(
    "storefront.cart.additions",
    description="Items added to carts",
    unit="1"
)

# Orders
orders_placed_counter = meter.create_counter(
    "storefront.orders.placed",
    description="Orders placed successfully",
    unit="1"
)

orders_failed_counter = meter.create_counter(
    "storefront.orders.failed",
    description="Order placements rolled back, by error code",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "storefront.orders.amount",
    description="Order amount including shipping",
    unit="THB"
)

order_status_changes_counter = meter.create_counter(
    "storefront.orders.status_changes",
    description="Order status transitions",
    unit="1"
)

# Payments
payment_verifications_counter = meter.create_counter(
    "storefront.payments.verifications",
    description="Payment slip verifications by outcome",
    unit="1"
)

payment_verify_duration_histogram = meter.create_histogram(
    "storefront.payments.verify.duration",
    description="Duration of payment slip verification calls",
    unit="s"
)

# Security
auth_attempts_counter = meter.create_counter(
    "storefront.auth.attempts",
    description="Authentication attempts",
    unit="1"
)

auth_failures_counter = meter.create_counter(
    "storefront.auth.failures",
    description="Authentication failures",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "storefront.rate_limit.exceeded",
    description="Rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "storefront.security.suspicious_activity",
    description="Suspicious activity detections",
    unit="1"
)
