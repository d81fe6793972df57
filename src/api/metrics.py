"""Metrics service for tracking scoring performance.

Singleton service to track scoring calls, unscored items and latency.
"""

import threading
from typing import Dict


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counter and latency tracking for scoring calls.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize metrics counters."""
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._scoring_count = 0
        self._items_scored = 0
        self._items_unscored = 0
        self._total_latency_ms = 0.0
        self._max_latency_ms = 0.0
        self._initialized = True

    def record_scoring(self, latency_ms: float, n_scored: int, n_unscored: int) -> None:
        """Record a scoring call.

        Args:
            latency_ms: Latency in milliseconds
            n_scored: Items that received a latent score
            n_unscored: Items unknown to the model
        """
        with self._lock:
            self._scoring_count += 1
            self._items_scored += n_scored
            self._items_unscored += n_unscored
            self._total_latency_ms += latency_ms
            self._max_latency_ms = max(self._max_latency_ms, latency_ms)

    def get_metrics(self) -> Dict:
        """Get current metrics."""
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._scoring_count
                if self._scoring_count > 0
                else 0.0
            )

            return {
                "scoring_count": self._scoring_count,
                "items_scored": self._items_scored,
                "items_unscored": self._items_unscored,
                "average_latency_ms": round(avg_latency, 2),
                "max_latency_ms": round(self._max_latency_ms, 2),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._scoring_count = 0
            self._items_scored = 0
            self._items_unscored = 0
            self._total_latency_ms = 0.0
            self._max_latency_ms = 0.0


# Global singleton instance
metrics_service = MetricsService()
