"""
Prometheus metrics.

HTTP request metrics for every endpoint plus payment and dashboard counters.
/metrics is not authenticated; restrict it to the monitoring network.
"""
import os
import time

from flask import Blueprint, Response, g, request
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    multiprocess,
)

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers write to PROMETHEUS_MULTIPROC_DIR and are collected on scrape
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

LATENCY_BUCKETS = (0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

http_requests_total = Counter(
    'http_requests_total', 'Total HTTP requests',
    ['method', 'endpoint', 'http_status'], registry=_metric_registry,
)
http_request_duration_seconds = Histogram(
    'http_request_duration_seconds', 'HTTP request latency in seconds',
    ['method', 'endpoint'], buckets=LATENCY_BUCKETS, registry=_metric_registry,
)
http_requests_in_flight = Gauge(
    'http_requests_in_flight', 'HTTP requests currently being processed',
    registry=_metric_registry,
)

payment_transitions_total = Counter(
    'payment_transitions_total', 'Payment state machine transitions by target state',
    ['state'], registry=_metric_registry,
)
dashboard_widget_failures_total = Counter(
    'dashboard_widget_failures_total', 'Dashboard widgets served with fallback data',
    ['widget'], registry=_metric_registry,
)


def record_payment_transition(status):
    """Count one transition of the payment state machine."""
    payment_transitions_total.labels(state=getattr(status, 'value', status)).inc()


def record_widget_result(result):
    """Count a dashboard widget that failed and fell back."""
    if not result.ok:
        dashboard_widget_failures_total.labels(widget=result.name).inc()


def setup_metrics_instrumentation(app):
    """Register request hooks that time and count every request."""

    @app.before_request
    def start_request_timer():
        g.request_started_at = time.perf_counter()
        http_requests_in_flight.inc()

    @app.after_request
    def observe_request(response):
        started = g.pop('request_started_at', None)
        if started is None:
            return response
        try:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(request.method, endpoint).observe(time.perf_counter() - started)
            http_requests_total.labels(request.method, endpoint, response.status_code).inc()
            http_requests_in_flight.dec()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        return response


@metrics_bp.route('/metrics')
def metrics():
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
