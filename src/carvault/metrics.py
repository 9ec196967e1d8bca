"""Prometheus counters for committed bookings."""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest


class PrometheusMetrics:
    """MetricsPort on its own registry, so several services can coexist in one process."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._outcomes = Counter(
            "carvault_transactions_total",
            "Booking commits by outcome",
            ["outcome"],
            registry=self.registry,
        )

    def record_success(self) -> None:
        self._outcomes.labels(outcome="success").inc()

    def record_failure(self) -> None:
        self._outcomes.labels(outcome="failure").inc()

    def value(self, outcome: str) -> float:
        sample = self.registry.get_sample_value(
            "carvault_transactions_total", {"outcome": outcome}
        )
        return sample or 0.0

    def render(self) -> bytes:
        """Exposition-format snapshot for a scrape endpoint."""
        return generate_latest(self.registry)
