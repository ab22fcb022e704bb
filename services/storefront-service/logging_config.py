"""
JSON logging for the storefront.

Every record goes to stdout as one JSON object carrying the active trace and
span ids, so log lines can be joined with traces in the collector. When
OpenTelemetry is enabled the same records are also exported over OTLP.
"""
import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger
from opentelemetry import trace

from config import OTEL_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME

# The OpenTelemetry logs SDK is still experimental
try:
    from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
    from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
    from opentelemetry.sdk.resources import Resource
    OTLP_LOGGING_AVAILABLE = True
except ImportError:
    OTLP_LOGGING_AVAILABLE = False

NOISY_LOGGERS = ('uvicorn.access', 'httpx', 'httpcore', 'multipart')


class TraceJsonFormatter(jsonlogger.JsonFormatter):
    """Adds trace_id, span_id and the service name to each record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            log_record['trace_id'] = format(ctx.trace_id, '032x')
            log_record['span_id'] = format(ctx.span_id, '016x')
            log_record['trace_flags'] = ctx.trace_flags

        log_record['service'] = SERVICE_NAME
        if 'message' in log_record:
            log_record['msg'] = log_record.pop('message')


def _build_otlp_handler(level: int) -> Optional[logging.Handler]:
    if not OTLP_LOGGING_AVAILABLE:
        logging.warning("OTLP logging SDK not available - logs will only go to stdout")
        return None

    try:
        provider = LoggerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
        provider.add_log_record_processor(
            BatchLogRecordProcessor(
                OTLPLogExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
            )
        )

        from opentelemetry._logs import set_logger_provider
        set_logger_provider(provider)

        return LoggingHandler(level=level, logger_provider=provider)
    except Exception as e:
        logging.warning(f"Failed to configure OTLP logging handler: {e}")
        return None


def setup_logging(level: int = logging.INFO) -> None:
    """Replace root handlers with a JSON stdout handler and, optionally, OTLP export."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(
        TraceJsonFormatter('%(levelname)s %(name)s %(message)s', rename_fields={'levelname': 'level'})
    )
    root_logger.addHandler(stdout_handler)

    if OTEL_ENABLED:
        otlp_handler = _build_otlp_handler(level)
        if otlp_handler is not None:
            root_logger.addHandler(otlp_handler)
            logging.info(f"Exporting logs to {OTEL_EXPORTER_OTLP_ENDPOINT}")
    else:
        logging.info("OpenTelemetry disabled - logs will only go to stdout")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
