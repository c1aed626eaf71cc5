"""
Prometheus metrics for the booking and payment flows
"""

import time
import logging
from contextlib import asynccontextmanager

from prometheus_client import Counter, Histogram

from app.core.exceptions import WayfarerError

logger = logging.getLogger(__name__)

SLOW_OPERATION_SECONDS = 5.0


REQUEST_COUNT = Counter(
    'app_requests_total',
    'Total requests',
    ['method', 'endpoint', 'status']
)
REQUEST_DURATION = Histogram(
    'app_request_duration_seconds',
    'Request duration',
    ['method', 'endpoint']
)
BOOKING_OPERATIONS = Counter(
    'wayfarer_booking_operations_total',
    'Booking operations by outcome',
    ['operation', 'outcome']
)
BOOKING_OPERATION_DURATION = Histogram(
    'wayfarer_booking_operation_duration_seconds',
    'Booking operation duration',
    ['operation']
)
PAYMENT_VERIFICATIONS = Counter(
    'wayfarer_payment_verifications_total',
    'Payment verifications by source and result',
    ['source', 'result']
)
GATEWAY_REQUESTS = Histogram(
    'wayfarer_gateway_request_duration_seconds',
    'Payment gateway call duration',
    ['operation', 'outcome']
)


class MetricsCollector:
    """Records booking and payment metrics"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def track_booking_operation(self, operation: str):
        """Time one booking operation and count it by outcome"""
        start_time = time.perf_counter()
        outcome = "success"
        try:
            yield
        except WayfarerError as e:
            outcome = e.code.lower()
            raise
        except Exception as e:
            outcome = "error"
            self.logger.error(f"Failed {operation} operation: {type(e).__name__}: {e}")
            raise
        finally:
            duration = time.perf_counter() - start_time
            BOOKING_OPERATIONS.labels(operation, outcome).inc()
            BOOKING_OPERATION_DURATION.labels(operation).observe(duration)
            if duration > SLOW_OPERATION_SECONDS:
                self.logger.warning(f"Slow {operation} operation: {duration:.2f}s")

    @asynccontextmanager
    async def track_gateway_call(self, operation: str):
        start_time = time.perf_counter()
        outcome = "success"
        try:
            yield
        except Exception:
            outcome = "error"
            raise
        finally:
            GATEWAY_REQUESTS.labels(operation, outcome).observe(time.perf_counter() - start_time)

    def record_payment_verification(self, source: str, result: str):
        PAYMENT_VERIFICATIONS.labels(source, result).inc()


# Global instance
metrics_collector = MetricsCollector()
