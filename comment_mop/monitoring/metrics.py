"""Prometheus metrics for monitoring the comment mop service."""

import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Define metrics
MOPS_TOTAL = Counter(
    "comment_mop_mops_total",
    "Number of mop invocations by terminal outcome",
    ["outcome"],
)

NODES_ACTIONED = Counter(
    "comment_mop_nodes_actioned_total",
    "Number of successful remove/lock calls",
    ["action"],
)

ACTION_ERRORS = Counter(
    "comment_mop_action_errors_total",
    "Number of failed remove/lock calls",
    ["action"],
)

PERMISSION_LOOKUPS = Counter(
    "comment_mop_permission_lookups_total",
    "Permission cache lookups by result",
    ["result"],
)

GATHER_DURATION = Histogram(
    "comment_mop_gather_duration_seconds",
    "Time spent collecting the comment tree",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

ACTION_DURATION = Histogram(
    "comment_mop_action_duration_seconds",
    "Time spent applying remove/lock actions",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)


class PrometheusExporter:
    """Prometheus metrics exporter for the comment mop service."""

    def __init__(self, port: int = 8000):
        """
        Initialize the Prometheus exporter.

        Args:
            port: Port to expose metrics on
        """
        self.port = port
        self.server_started = False

    def start_server(self) -> None:
        """Start the Prometheus metrics server."""
        if not self.server_started:
            try:
                start_http_server(self.port)
                self.server_started = True
                logger.info(f"Started Prometheus metrics server on port {self.port}")
            except Exception as e:
                logger.error(f"Failed to start Prometheus metrics server: {str(e)}")

    def record_mop(self, outcome: str) -> None:
        """
        Record a finished mop invocation.

        Args:
            outcome: Terminal outcome value (e.g. 'succeeded', 'denied')
        """
        MOPS_TOTAL.labels(outcome=outcome).inc()

    def record_nodes_actioned(self, action: str, count: int) -> None:
        """
        Record successful mutating calls.

        Args:
            action: 'remove' or 'lock'
            count: Number of successful calls
        """
        if count > 0:
            NODES_ACTIONED.labels(action=action).inc(count)

    def record_action_errors(self, action: str, count: int) -> None:
        ACTION_ERRORS.labels(action=action).inc(count)

    def record_permission_lookup(self, result: str) -> None:
        """
        Record a permission cache lookup.

        Args:
            result: 'hit', 'miss' or 'error'
        """
        PERMISSION_LOOKUPS.labels(result=result).inc()

    def observe_gather(self, seconds: float) -> None:
        GATHER_DURATION.observe(seconds)

    def observe_action(self, seconds: float) -> None:
        ACTION_DURATION.observe(seconds)
