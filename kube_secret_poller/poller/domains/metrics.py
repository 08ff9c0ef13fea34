"""Prometheus metrics for sync outcomes."""
import logging
from typing import Optional
from prometheus_client import CollectorRegistry, Counter, REGISTRY, start_http_server

logger = logging.getLogger(__name__)


class SyncMetrics:
    """Counts sync cycles by secret, namespace, backend and status."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY
        self.sync_calls = Counter(
            "kube_secret_poller_sync_calls",
            "Number of secret sync cycles",
            ["name", "namespace", "backend", "status"],
            registry=self.registry,
        )

    def observe_sync(self, name: str, namespace: str, backend: str, status: str) -> None:
        """Record one cycle outcome; status is 'success' or 'error'."""
        self.sync_calls.labels(name=name, namespace=namespace, backend=backend, status=status).inc()

    def serve(self, port: int) -> None:
        """Expose /metrics on the given port (0 disables)."""
        if not port:
            return
        start_http_server(port, registry=self.registry)
        logger.info(f"Serving metrics on port {port}")


_default_metrics: Optional[SyncMetrics] = None


def get_sync_metrics() -> SyncMetrics:
    """Process-wide metrics on the default registry, created on first use."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = SyncMetrics()
    return _default_metrics
