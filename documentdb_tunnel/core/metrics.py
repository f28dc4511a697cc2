"""Prometheus metrics collection for connection attempts."""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    REGISTRY,
)

# Database Connection Metrics
db_connection_attempts_total = Counter(
    "db_connection_attempts_total",
    "Total number of database connection attempts",
    ["mode", "status"],
)

db_connect_duration_seconds = Histogram(
    "db_connect_duration_seconds",
    "Time spent establishing a database connection in seconds",
    ["mode"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# SSH Tunnel Metrics
ssh_tunnel_attempts_total = Counter(
    "ssh_tunnel_attempts_total",
    "Total number of SSH tunnel attempts",
    ["status"],
)

active_ssh_tunnels = Gauge(
    "active_ssh_tunnels",
    "Number of open SSH tunnels",
)

# Error Metrics
errors_total = Counter(
    "errors_total",
    "Total number of errors",
    ["error_code", "error_category"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_db_connection_attempt(mode: str, status: str, duration: float):
        """Record database connection attempt."""
        db_connection_attempts_total.labels(mode=mode, status=status).inc()
        db_connect_duration_seconds.labels(mode=mode).observe(duration)

    @staticmethod
    def record_tunnel_open(status: str):
        """Record SSH tunnel attempt."""
        ssh_tunnel_attempts_total.labels(status=status).inc()
        if status == "success":
            active_ssh_tunnels.inc()

    @staticmethod
    def record_tunnel_close():
        """Record SSH tunnel teardown."""
        active_ssh_tunnels.dec()

    @staticmethod
    def record_error(error_code: str, error_category: str):
        """Record error occurrence."""
        errors_total.labels(error_code=error_code, error_category=error_category).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest(REGISTRY)


# Global instance
metrics = MetricsCollector()
