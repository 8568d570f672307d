"""Prometheus metrics for monitoring job and API health."""

from typing import Optional
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from .config import get_config
from .logger import get_logger


logger = get_logger(__name__)


# Counters
api_requests = Counter(
    "whalewatch_api_requests_total",
    "Total number of third-party API requests",
    ["provider", "endpoint", "status"]
)

frenzies_detected = Counter(
    "whalewatch_frenzies_detected_total",
    "Total number of whale frenzies detected"
)

auto_buys = Counter(
    "whalewatch_auto_buys_total",
    "Total number of frenzy auto-buy attempts",
    ["status"]
)

watchlist_transitions = Counter(
    "whalewatch_watchlist_transitions_total",
    "Rejected-token lifecycle transitions",
    ["transition"]
)

mint_detections = Counter(
    "whalewatch_mint_detections_total",
    "Total number of new mints detected on monitored wallets"
)

alerts_sent = Counter(
    "whalewatch_alerts_sent_total",
    "Total number of alerts sent",
    ["channel", "status"]
)

job_errors = Counter(
    "whalewatch_job_errors_total",
    "Errors raised while running jobs",
    ["job"]
)

# Gauges
last_job_run = Gauge(
    "whalewatch_last_job_run_timestamp",
    "Timestamp of the last completed job run",
    ["job"]
)

# Histograms
api_request_duration = Histogram(
    "whalewatch_api_request_duration_seconds",
    "Duration of third-party API requests in seconds",
    ["provider"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0]
)

job_duration = Histogram(
    "whalewatch_job_duration_seconds",
    "Duration of job runs in seconds",
    ["job"],
    buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0]
)

alert_delivery_duration = Histogram(
    "whalewatch_alert_delivery_duration_seconds",
    "Duration of alert delivery in seconds",
    ["channel"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0]
)


class MetricsServer:
    """Prometheus metrics server manager."""

    def __init__(self):
        self.config = get_config()
        self.server_started = False

    def start(self) -> None:
        """Start Prometheus metrics server."""
        if not self.config.prometheus_enabled:
            logger.info("Prometheus metrics disabled")
            return

        if self.server_started:
            logger.warning("Metrics server already started")
            return

        try:
            start_http_server(self.config.prometheus_port)
            self.server_started = True
            logger.info(f"Prometheus metrics server started on port {self.config.prometheus_port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise


_metrics_server: Optional[MetricsServer] = None


def get_metrics_server() -> MetricsServer:
    """Get or create global metrics server instance."""
    global _metrics_server
    if _metrics_server is None:
        _metrics_server = MetricsServer()
    return _metrics_server


def start_metrics_server() -> None:
    """Start the global metrics server."""
    get_metrics_server().start()
