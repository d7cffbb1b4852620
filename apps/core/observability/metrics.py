"""
Metrics instrumentation.

All application metrics are declared once here and reached through the
module-level ``metrics`` registry.
"""
import time
from functools import wraps

from prometheus_client import Counter, Histogram


class MetricsRegistry:
    """
    Central metrics registry for the billing ledger.

    Provides typed access to all application metrics.
    """

    def __init__(self):
        self._setup_metrics()

    def _setup_metrics(self):
        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.exceptions_total = Counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Ledger Metrics
        # ===================================================================
        self.billing_bills_created_total = Counter(
            'billing_bills_created_total',
            'Bills created',
            ['result']  # success, rolled_back
        )

        self.billing_line_items_total = Counter(
            'billing_line_items_total',
            'Line item mutations',
            ['operation', 'result']  # operation: add|update
        )

        self.billing_payments_total = Counter(
            'billing_payments_total',
            'Payments applied',
            ['result']
        )

        self.billing_voids_total = Counter(
            'billing_voids_total',
            'Soft voids recorded',
            ['entity', 'result']  # entity: bill|line_item|payment
        )

        self.billing_status_transitions_total = Counter(
            'billing_status_transitions_total',
            'Bill status recomputations',
            ['from_status', 'to_status']
        )

        self.billing_recompute_conflicts_total = Counter(
            'billing_recompute_conflicts_total',
            'Status recomputation conflicts',
            ['outcome']  # retried, exhausted
        )

        self.billing_receipts_issued_total = Counter(
            'billing_receipts_issued_total',
            'Receipt numbers issued'
        )

        self.billing_operation_duration_seconds = Histogram(
            'billing_operation_duration_seconds',
            'Ledger operation duration',
            ['operation'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
        )

    def track_duration(self, operation):
        """
        Decorator to record the duration of a ledger operation.

        Usage:
            @metrics.track_duration('apply_payment')
            def apply_payment(...):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.billing_operation_duration_seconds.labels(
                        operation=operation
                    ).observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
