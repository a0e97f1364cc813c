"""
Prometheus metrics exporter
"""
import logging
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from functools import wraps
import time

logger = logging.getLogger(__name__)

# Counters
reports_submitted = Counter('moderation_reports_submitted_total', 'Total reports submitted', ['reason', 'priority'])
case_decisions = Counter('moderation_case_decisions_total', 'Total case decisions', ['decision'])
violations_issued = Counter('moderation_violations_issued_total', 'Total violations issued', ['action_type', 'ladder_tier'])
appeals_reviewed = Counter('moderation_appeals_total', 'Total appeal outcomes', ['outcome'])
degraded_scorings = Counter('moderation_degraded_scorings_total', 'Scorings with a failed detector')
expirations = Counter('moderation_violation_expirations_total', 'Violations expired by the sweep')
delivery_failures = Counter('moderation_delivery_failures_total', 'Outbound delivery failures', ['kind'])

# Histograms (for latency)
scorer_latency = Histogram('moderation_scorer_duration_seconds', 'Risk scorer duration')
operation_latency = Histogram('moderation_operation_duration_seconds', 'Engine operation duration', ['operation'])

# Gauges (for current state)
queue_depth = Gauge('moderation_queue_depth', 'Current review queue depth', ['priority'])


class MetricsExporter:
    """Prometheus metrics exporter"""

    def __init__(self, port: int = 8000):
        self.port = port
        self.server_started = False

    def start(self):
        """Start Prometheus HTTP server"""
        if not self.server_started:
            start_http_server(self.port)
            self.server_started = True
            logger.info(f"Prometheus metrics server started on port {self.port}")

    @staticmethod
    def track_operation(operation: str):
        """Decorator to track synchronous engine operation time"""
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    result = func(*args, **kwargs)
                    duration = time.time() - start_time
                    operation_latency.labels(operation=operation).observe(duration)
                    return result
                except Exception:
                    duration = time.time() - start_time
                    operation_latency.labels(operation=f"{operation}_error").observe(duration)
                    raise
            return wrapper
        return decorator

    @staticmethod
    def record_report(reason: str, priority: str):
        reports_submitted.labels(reason=reason, priority=priority).inc()

    @staticmethod
    def record_case_decision(decision: str):
        case_decisions.labels(decision=decision).inc()

    @staticmethod
    def record_violation(action_type: str, ladder_tier: int):
        violations_issued.labels(action_type=action_type, ladder_tier=str(ladder_tier)).inc()

    @staticmethod
    def record_appeal(outcome: str):
        appeals_reviewed.labels(outcome=outcome).inc()

    @staticmethod
    def record_scoring(duration: float, degraded: bool):
        """Record one risk scorer run"""
        scorer_latency.observe(duration)
        if degraded:
            degraded_scorings.inc()

    @staticmethod
    def record_expirations(count: int):
        if count:
            expirations.inc(count)

    @staticmethod
    def record_delivery_failure(kind: str):
        delivery_failures.labels(kind=kind).inc()

    @staticmethod
    def update_queue_depth(priority: str, depth: int):
        """Update queue depth gauge"""
        queue_depth.labels(priority=priority).set(depth)
