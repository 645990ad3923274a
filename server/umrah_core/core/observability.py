"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging
import sys

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "umrah-booking-core"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
SEATS_RESERVED = Counter(
    'departure_seats_reserved_total',
    'Seats reserved on departures',
    registry=REGISTRY
)

SEATS_RELEASED = Counter(
    'departure_seats_released_total',
    'Seats released back to departures',
    registry=REGISTRY
)

RESERVATIONS_REJECTED = Counter(
    'departure_reservations_rejected_total',
    'Reservations rejected by the inventory',
    ['reason'],
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_transitions_total',
    'Booking lifecycle transitions',
    ['event', 'to_status'],
    registry=REGISTRY
)

PAYMENTS_VERIFIED = Counter(
    'payments_verified_total',
    'Payments resolved by staff',
    ['ledger', 'outcome'],
    registry=REGISTRY
)

LEDGER_AMOUNT_APPLIED = Counter(
    'ledger_amount_applied_total',
    'Verified payment amount applied to ledgers',
    ['ledger'],
    registry=REGISTRY
)

COMMISSION_EVENTS = Counter(
    'agent_commission_events_total',
    'Commission lifecycle events',
    ['event'],
    registry=REGISTRY
)

ROOM_EVENTS = Counter(
    'room_allocation_events_total',
    'Room pairing and occupancy events',
    ['event'],
    registry=REGISTRY
)

PERSISTENCE_CONFLICTS = Counter(
    'persistence_conflicts_total',
    'Optimistic concurrency collisions',
    ['operation'],
    registry=REGISTRY
)

NOTIFICATION_FAILURES = Counter(
    'notification_failures_total',
    'Notifications that could not be delivered',
    ['kind'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structlog and route stdlib logging records through it."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics export when a collector is configured."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the SQLAlchemy engine with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration: float):
        """Record one served HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)

    @staticmethod
    def record_seats_reserved(pax: int):
        SEATS_RESERVED.inc(pax)

    @staticmethod
    def record_seats_released(pax: int):
        SEATS_RELEASED.inc(pax)

    @staticmethod
    def record_reservation_rejected(reason: str):
        RESERVATIONS_REJECTED.labels(reason=reason).inc()

    @staticmethod
    def record_booking_transition(event: str, to_status: str):
        BOOKING_TRANSITIONS.labels(event=event, to_status=to_status).inc()

    @staticmethod
    def record_payment_verified(ledger: str, outcome: str, amount: int = 0):
        """Record a payment resolution and, when approved, its amount."""
        PAYMENTS_VERIFIED.labels(ledger=ledger, outcome=outcome).inc()
        if amount:
            LEDGER_AMOUNT_APPLIED.labels(ledger=ledger).inc(amount)

    @staticmethod
    def record_commission(event: str):
        COMMISSION_EVENTS.labels(event=event).inc()

    @staticmethod
    def record_room_event(event: str):
        ROOM_EVENTS.labels(event=event).inc()

    @staticmethod
    def record_conflict(operation: str):
        PERSISTENCE_CONFLICTS.labels(operation=operation).inc()

    @staticmethod
    def record_notification_failure(kind: str):
        NOTIFICATION_FAILURES.labels(kind=kind).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()
