"""
Prometheus metrics for the completion ledger.

Tracks:
- Completions recorded, by sequence kind
- Duplicate submissions absorbed, by how they were matched
- Rejected completions, by error code
- Ledger write duration
"""
from prometheus_client import Counter, Histogram

completions_recorded_total = Counter(
    "completions_recorded_total",
    "Total number of completion records created",
    ["sequence_kind"],  # open, bounded, windowed
)

completion_duplicates_total = Counter(
    "completion_duplicates_total",
    "Total duplicate completion requests answered with the existing record",
    ["match"],  # key, triple, race
)

completion_rejections_total = Counter(
    "completion_rejections_total",
    "Total completion requests rejected",
    ["error_code"],
)

completion_write_duration_seconds = Histogram(
    "completion_write_duration_seconds",
    "Completion ledger write duration in seconds",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_completion(sequence_kind: str, duration_seconds: float) -> None:
        """Record a newly created completion."""
        completions_recorded_total.labels(sequence_kind=sequence_kind).inc()
        completion_write_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_duplicate(match: str) -> None:
        """Record a duplicate completion answered idempotently."""
        completion_duplicates_total.labels(match=match).inc()

    @staticmethod
    def record_rejection(error_code: str) -> None:
        """Record a rejected completion."""
        completion_rejections_total.labels(error_code=error_code).inc()


# Export singleton instance
metrics = MetricsCollector()
