"""
Prometheus-compatible metrics for observability.

Tracks key workflow indicators:
- Bookings created (by service type)
- Status transitions (from/to status)
- Cancellation requests (requested, approved, rejected)
- Notification deliveries (by kind and outcome)

Usage:
    from pest_booking.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_bookings_created(service_type="termite")
    metrics.increment_transitions(from_status="pending", to_status="confirmed")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector for the booking workflow.

    Counters:
    - bookings_created_total: New bookings (labels: service_type)
    - booking_transitions_total: Status changes (labels: from_status, to_status)
    - cancellation_requests_total: Cancellation workflow events (labels: outcome)
    - notifications_total: Notification attempts (labels: kind, status)

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "bookings_created_total": "Total number of bookings created",
        "booking_transitions_total": "Total number of booking status transitions",
        "cancellation_requests_total": "Total number of cancellation requests by outcome",
        "notifications_total": "Total number of notification attempts by outcome",
    }

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        sorted_labels = tuple(sorted(labels.items()))
        return (metric_name, sorted_labels)

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    # ===== Booking Metrics =====

    def increment_bookings_created(self, service_type: str, amount: int = 1):
        """Increment bookings created counter."""
        self._increment("bookings_created_total", {"service_type": service_type.lower()}, amount)

    def increment_transitions(self, from_status: str, to_status: str, amount: int = 1):
        """
        Increment status transition counter.

        Args:
            from_status: Booking status before the change
            to_status: Booking status after the change
            amount: Increment amount (default 1)
        """
        labels = {
            "from_status": from_status.lower(),
            "to_status": to_status.lower(),
        }
        self._increment("booking_transitions_total", labels, amount)

    def increment_cancellation_requests(self, outcome: str, amount: int = 1):
        """Increment cancellation counter (outcome: requested, approved, rejected)."""
        self._increment("cancellation_requests_total", {"outcome": outcome.lower()}, amount)

    # ===== Notification Metrics =====

    def increment_notifications(self, kind: str, status: str = "sent", amount: int = 1):
        """
        Increment notifications counter.

        Args:
            kind: Notification kind (booking_created, status_changed, ...)
            status: Delivery outcome (sent, failed)
            amount: Increment amount
        """
        labels = {
            "kind": kind.lower(),
            "status": status.lower(),
        }
        self._increment("notifications_total", labels, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        # Group counters by metric name
        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")  # Blank line between metrics

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """
        Get current value of a specific counter.

        Args:
            metric_name: Name of the metric
            labels: Exact label set

        Returns:
            Current counter value
        """
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
