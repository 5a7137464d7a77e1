"""
Prometheus metrics for the payroll reconciliation engine.
Tracks run outcomes, provider API traffic and data-quality counters.
"""

from prometheus_client import Counter, Histogram, Gauge, start_http_server
import logging

logger = logging.getLogger(__name__)

# Business Metrics
RECONCILIATION_RUNS_TOTAL = Counter(
    'payroll_reconciliation_runs_total',
    'Total number of reconciliation runs',
    ['status']
)

PAYMENT_RECORDS_FETCHED_TOTAL = Counter(
    'payroll_payment_records_fetched_total',
    'Total payment records retrieved from the provider',
    ['window']
)

PARTIAL_DATA_TOTAL = Counter(
    'payroll_partial_data_total',
    'Payment windows whose pagination stopped early'
)

EXCLUDED_CURRENCY_RECORDS_TOTAL = Counter(
    'payroll_excluded_currency_records_total',
    'Payment records excluded for a non-reporting currency',
    ['category']
)

UNCLASSIFIED_CONTRACTS = Gauge(
    'payroll_unclassified_contracts',
    'Contracts outside EOR/PEO/Contractor in the latest run'
)

# Technical Metrics
RECONCILIATION_DURATION_SECONDS = Histogram(
    'payroll_reconciliation_duration_seconds',
    'Time spent on a reconciliation run',
    buckets=[1, 5, 10, 30, 60, 300, 600]
)

API_REQUESTS_TOTAL = Counter(
    'payroll_api_requests_total',
    'Total provider API requests made',
    ['endpoint', 'status']
)

API_REQUEST_DURATION_SECONDS = Histogram(
    'payroll_api_request_duration_seconds',
    'Provider API request duration',
    ['endpoint'],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30]
)


class MetricsCollector:
    """Centralized metrics collection for the reconciliation engine."""

    def __init__(self, port: int = 8000):
        self.port = port
        self.server_started = False

    def start_metrics_server(self):
        """Start Prometheus metrics server."""
        if not self.server_started:
            try:
                if not (1024 <= self.port <= 65535):
                    raise ValueError(f"Invalid port {self.port}. Must be between 1024-65535")

                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Metrics server started on port {self.port}")
            except (ValueError, OSError) as e:
                logger.error(f"Failed to start metrics server: {e}")

    def record_reconciliation_run(self, status: str, duration: float):
        """Record reconciliation run metrics."""
        RECONCILIATION_RUNS_TOTAL.labels(status=status).inc()
        RECONCILIATION_DURATION_SECONDS.observe(duration)

    def record_payments_fetched(self, window: str, count: int):
        """Record payment retrieval metrics."""
        PAYMENT_RECORDS_FETCHED_TOTAL.labels(window=window).inc(count)

    def record_partial_data(self):
        PARTIAL_DATA_TOTAL.inc()

    def record_excluded_currency(self, category: str, count: int):
        EXCLUDED_CURRENCY_RECORDS_TOTAL.labels(category=category).inc(count)

    def record_unclassified(self, count: int):
        UNCLASSIFIED_CONTRACTS.set(count)

    def record_api_request(self, endpoint: str, status: str, duration: float):
        """Record API request metrics."""
        API_REQUESTS_TOTAL.labels(endpoint=endpoint, status=status).inc()
        API_REQUEST_DURATION_SECONDS.labels(endpoint=endpoint).observe(duration)


# Global metrics collector instance
metrics = MetricsCollector()

