"""
Bridge Metrics
==============
In-memory metrics for verification, cache and relay activity, exported
in Prometheus text format by the health routes.
"""

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Histogram observations kept per series
MAX_OBSERVATIONS = 1000


@dataclass
class MetricLabels:
    """Common labels for metrics."""
    service: str
    environment: str = "production"
    version: str = "0.3.0"


class SimpleMetrics:
    """
    Simple in-memory metrics collector.
    
    Histograms keep a bounded window of recent observations.
    """
    
    def __init__(self, labels: Optional[MetricLabels] = None):
        self.labels = labels or MetricLabels(service="pageproof-bridge")
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, float] = {}
        self._histograms: Dict[str, List[float]] = {}
    
    def increment(self, name: str, value: int = 1, labels: Optional[Dict] = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, labels)
        self._counters[key] = self._counters.get(key, 0) + value
    
    def set_gauge(self, name: str, value: float, labels: Optional[Dict] = None) -> None:
        """Set a gauge value."""
        self._gauges[self._make_key(name, labels)] = value
    
    def observe(self, name: str, value: float, labels: Optional[Dict] = None) -> None:
        """Record a histogram observation."""
        values = self._histograms.setdefault(self._make_key(name, labels), [])
        values.append(value)
        if len(values) > MAX_OBSERVATIONS:
            del values[: len(values) - MAX_OBSERVATIONS]
    
    def _make_key(self, name: str, labels: Optional[Dict] = None) -> str:
        if labels:
            label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
            return f"{name}{{{label_str}}}"
        return name
    
    def get_counter(self, name: str, labels: Optional[Dict] = None) -> int:
        """Get counter value."""
        return self._counters.get(self._make_key(name, labels), 0)
    
    def get_gauge(self, name: str, labels: Optional[Dict] = None) -> Optional[float]:
        return self._gauges.get(self._make_key(name, labels))
    
    def get_histogram_stats(self, name: str, labels: Optional[Dict] = None) -> Dict:
        """Get histogram statistics."""
        return self._stats_for_key(self._make_key(name, labels))
    
    def _stats_for_key(self, key: str) -> Dict:
        values = self._histograms.get(key, [])
        
        if not values:
            return {"count": 0, "sum": 0, "avg": 0, "p50": 0, "p95": 0, "p99": 0}
        
        sorted_values = sorted(values)
        count = len(values)
        
        return {
            "count": count,
            "sum": sum(values),
            "avg": sum(values) / count,
            "p50": self._percentile(sorted_values, 50),
            "p95": self._percentile(sorted_values, 95),
            "p99": self._percentile(sorted_values, 99),
        }
    
    def _percentile(self, sorted_values: list, percentile: int) -> float:
        if not sorted_values:
            return 0
        idx = int(len(sorted_values) * percentile / 100)
        return sorted_values[min(idx, len(sorted_values) - 1)]
    
    def snapshot(self) -> Dict:
        """All metrics as a JSON-friendly dict."""
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "histograms": {
                key: self._stats_for_key(key) for key in self._histograms
            },
        }
    
    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        base_labels = f'service="{self.labels.service}",env="{self.labels.environment}"'
        
        def _labels(key: str):
            name, _, rest = key.partition("{")
            extra = rest[:-1] if rest else ""
            return name, "{" + base_labels + ("," + extra if extra else "") + "}"
        
        for key, value in self._counters.items():
            name, labels = _labels(key)
            lines.append(f"{name}_total{labels} {value}")
        
        for key, value in self._gauges.items():
            name, labels = _labels(key)
            lines.append(f"{name}{labels} {value}")
        
        # Histograms (simplified as summary)
        for key in self._histograms:
            stats = self._stats_for_key(key)
            name, labels = _labels(key)
            lines.append(f"{name}_count{labels} {stats['count']}")
            lines.append(f"{name}_sum{labels} {stats['sum']}")
        
        return "\n".join(lines)


class Timer:
    """Context manager for timing operations."""
    
    def __init__(self, metrics: SimpleMetrics, name: str, labels: Optional[Dict] = None):
        self.metrics = metrics
        self.name = name
        self.labels = labels
        self._start: Optional[float] = None
        self.elapsed: float = 0.0
    
    def __enter__(self):
        self._start = time.perf_counter()
        return self
    
    def __exit__(self, *args):
        if self._start is not None:
            self.elapsed = time.perf_counter() - self._start
            self.metrics.observe(self.name, self.elapsed, self.labels)


async def measure_async(
    metrics: SimpleMetrics,
    name: str,
    func: Callable[[], Awaitable[T]],
    labels: Optional[Dict] = None,
) -> T:
    """Await ``func()`` and record its duration, counting failures."""
    with Timer(metrics, f"{name}_duration_seconds", labels):
        try:
            return await func()
        except Exception:
            metrics.increment(f"{name}_errors", labels=labels)
            raise


class MetricNames:
    HTTP_REQUESTS_TOTAL = "http_requests"
    HMAC_VERIFICATION = "hmac_verification"
    HMAC_OUTCOMES = "hmac_verification_outcomes"
    HMAC_CACHE_HITS = "hmac_verification_cache_hits"
    WEBHOOK_SIGNATURES = "webhook_signature_checks"
    SECRET_FETCH_FAILURES = "secret_fetch_failures"
    RELAY_REQUESTS = "powerapps_relay_requests"
    CACHE_KEYS = "cache_keys"
