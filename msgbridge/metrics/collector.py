"""Per-correlator metrics."""
import time
from collections import defaultdict, deque
from typing import Deque, Dict
import structlog

log = structlog.get_logger()


class MetricsCollector:
    """
    Counters, gauges and a bounded reply-latency window for one correlator.

    Each Correlator owns its collector, so gauges such as pending_requests
    reflect that correlator only. Latency keeps the most recent
    `latency_window` samples per key; stats are computed on read.
    """

    def __init__(self, namespace: str | None = None, latency_window: int = 1024):
        """
        Args:
            namespace: Identifier namespace of the owning correlator, reported in snapshots
            latency_window: Number of latency samples kept per key
        """
        self.namespace = namespace
        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = {}
        self._latencies: Dict[str, Deque[float]] = {}
        self._latency_window = latency_window
        self._started = time.monotonic()

    def increment(self, metric: str, value: int = 1, labels: Dict[str, str] | None = None):
        key = self._make_key(metric, labels)
        self._counters[key] += value
        log.debug("metric.increment", metric=metric, value=value, labels=labels)

    def gauge(self, metric: str, value: float, labels: Dict[str, str] | None = None):
        self._gauges[self._make_key(metric, labels)] = value

    def observe_latency(self, metric: str, started: float, labels: Dict[str, str] | None = None) -> float:
        """
        Record the milliseconds elapsed since `started` (a time.monotonic() reading).

        Returns:
            The recorded latency in milliseconds
        """
        latency_ms = (time.monotonic() - started) * 1000
        key = self._make_key(metric, labels)
        window = self._latencies.get(key)
        if window is None:
            window = self._latencies[key] = deque(maxlen=self._latency_window)
        window.append(latency_ms)
        return latency_ms

    def get_metrics(self) -> Dict:
        """
        Snapshot of every metric.

        Returns:
            Dictionary with namespace, uptime, counters, gauges and latency stats
        """
        latency = {}
        for key, samples in self._latencies.items():
            if not samples:
                continue
            ordered = sorted(samples)
            latency[key] = {
                "count": len(ordered),
                "avg": sum(ordered) / len(ordered),
                "p50": _percentile(ordered, 0.5),
                "p95": _percentile(ordered, 0.95),
                "max": ordered[-1],
            }

        return {
            "namespace": self.namespace,
            "uptime_seconds": time.monotonic() - self._started,
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "latency": latency,
        }

    @staticmethod
    def _make_key(metric: str, labels: Dict[str, str] | None) -> str:
        if not labels:
            return metric

        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{metric}{{{label_str}}}"


def _percentile(ordered: list[float], q: float) -> float:
    index = min(len(ordered) - 1, int(round(q * (len(ordered) - 1))))
    return ordered[index]


REQUESTS_SENT_TOTAL = "requests_sent_total"
REPLIES_RECEIVED_TOTAL = "replies_received_total"
REQUESTS_TIMED_OUT_TOTAL = "requests_timed_out_total"
REQUESTS_CANCELLED_TOTAL = "requests_cancelled_total"
LATE_REPLIES_TOTAL = "late_replies_total"
INBOUND_REQUESTS_TOTAL = "inbound_requests_total"
HANDLER_ERRORS_TOTAL = "handler_errors_total"
PENDING_REQUESTS = "pending_requests"
REPLY_LATENCY_MS = "reply_latency_ms"
