"""
ModGate - Metrics
=================

Lightweight counters and timers for moderation decisions.

DESIGN:
    Counters answer "how often": rule triggers, rule errors, classifier
    outages and dispatched actions. Timers track how long a full pipeline
    evaluation takes, using a rolling window per metric so memory stays
    bounded.

    Counter names in use:
    - rule.<name>.triggered / rule.<name>.error
    - classifier.unavailable.<reason> / classifier.low_confidence / classifier.report
    - dispatch.<action>
    - platform.<operation>.failed
"""

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Generator, List, Optional

from modgate.core.logger import LOG_TZ, logger


# =============================================================================
# Constants
# =============================================================================

DEFAULT_WINDOW_SIZE = 100
"""Number of samples to keep per metric."""

SLOW_THRESHOLD_MS = 1000
"""Operations taking longer than this (ms) are logged as slow."""


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class MetricSample:
    """Single timing sample in milliseconds."""
    value: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(LOG_TZ))


@dataclass
class MetricStats:
    """Aggregated statistics for a metric."""
    name: str
    count: int
    avg_ms: float
    max_ms: float
    p95_ms: float
    slow_count: int


# =============================================================================
# Metrics Collector
# =============================================================================

class MetricsCollector:
    """
    Collects counters and timing samples.

    Attributes:
        metrics: Dictionary of metric name to sample deque.
        window_size: Maximum samples per metric.
    """

    def __init__(self, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        self.metrics: Dict[str, Deque[MetricSample]] = {}
        self.window_size = window_size
        self._counters: Dict[str, int] = {}

    def record(self, name: str, duration_ms: float) -> None:
        """Record a timing sample, warning when it is slow."""
        if name not in self.metrics:
            self.metrics[name] = deque(maxlen=self.window_size)
        self.metrics[name].append(MetricSample(value=duration_ms))

        if duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow Operation Detected", [
                ("Metric", name),
                ("Duration", f"{duration_ms:.0f}ms"),
                ("Threshold", f"{SLOW_THRESHOLD_MS}ms"),
            ])

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        self._counters[name] = self._counters.get(name, 0) + amount

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        return self._counters.get(name, 0)

    def get_stats(self, name: str) -> Optional[MetricStats]:
        """
        Calculate statistics for a metric.

        Returns:
            MetricStats or None if no samples exist.
        """
        samples = self.metrics.get(name)
        if not samples:
            return None

        values: List[float] = sorted(s.value for s in samples)
        count = len(values)
        p95_index = min(int(count * 0.95), count - 1)

        return MetricStats(
            name=name,
            count=count,
            avg_ms=sum(values) / count,
            max_ms=values[-1],
            p95_ms=values[p95_index],
            slow_count=sum(1 for v in values if v > SLOW_THRESHOLD_MS),
        )

    def clear(self) -> None:
        """Clear all metrics and counters."""
        self.metrics.clear()
        self._counters.clear()

    @contextmanager
    def timer(self, name: str) -> Generator[None, None, None]:
        """
        Context manager for timing operations.

        Example:
            with metrics.timer("pipeline.evaluate"):
                results = await pipeline.evaluate_all(message)
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000)


# =============================================================================
# Global Instance
# =============================================================================

metrics = MetricsCollector()
"""Global metrics collector instance."""


def init_metrics() -> None:
    """Log that the metrics system is ready. Called once at startup."""
    logger.tree("Metrics System Initialized", [
        ("Window Size", str(metrics.window_size)),
        ("Slow Threshold", f"{SLOW_THRESHOLD_MS}ms"),
    ], emoji="📊")


__all__ = [
    "MetricsCollector",
    "MetricSample",
    "MetricStats",
    "metrics",
    "init_metrics",
]
