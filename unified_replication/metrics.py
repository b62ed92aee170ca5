from functools import wraps
import time

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REPLICATION_REGISTRY = CollectorRegistry()

# Reconciliation Metrics
OPERATIONS_TOTAL = Counter(
    'unified_replication_operations_total',
    'Number of replication operations processed',
    ['backend', 'operation', 'result'],
    registry=REPLICATION_REGISTRY
)

OPERATION_LATENCY = Histogram(
    'unified_replication_operation_seconds',
    'Time spent processing replication operations',
    ['backend', 'operation'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=REPLICATION_REGISTRY
)

RECONCILE_ERRORS = Counter(
    'unified_replication_errors_total',
    'Number of failed replication operations by reason',
    ['reason'],
    registry=REPLICATION_REGISTRY
)

# Discovery Metrics
DISCOVERY_CACHE_HITS = Counter(
    'unified_replication_discovery_cache_hits_total',
    'Number of discovery cache hits',
    registry=REPLICATION_REGISTRY
)

DISCOVERY_CACHE_MISSES = Counter(
    'unified_replication_discovery_cache_misses_total',
    'Number of discovery cache misses',
    registry=REPLICATION_REGISTRY
)

BACKEND_AVAILABLE = Gauge(
    'unified_replication_backend_available',
    'Backend availability (1 available, 0 unavailable, -1 unknown)',
    ['backend'],
    registry=REPLICATION_REGISTRY
)

# Resilience Metrics
CIRCUIT_STATE = Gauge(
    'unified_replication_circuit_state',
    'Circuit breaker state (0 closed, 1 half-open, 2 open)',
    ['backend'],
    registry=REPLICATION_REGISTRY
)

RETRY_ATTEMPTS = Counter(
    'unified_replication_retry_attempts_total',
    'Number of retried attempts',
    ['operation'],
    registry=REPLICATION_REGISTRY
)

CIRCUIT_STATE_VALUES = {"closed": 0, "half-open": 1, "open": 2}


def record_backend_availability(backend: str, available):
    value = -1 if available is None else (1 if available else 0)
    BACKEND_AVAILABLE.labels(backend=backend).set(value)


def record_circuit_state(backend: str, state: str):
    CIRCUIT_STATE.labels(backend=backend).set(CIRCUIT_STATE_VALUES.get(state, -1))


def track_operation(operation: str):
    """Decorator recording count and latency of an async backend operation.

    The decorated callable must take the backend identity as its first
    positional argument after ``self``.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(self, backend, *args, **kwargs):
            start_time = time.time()
            label = getattr(backend, "value", str(backend))
            try:
                result = await func(self, backend, *args, **kwargs)
                OPERATIONS_TOTAL.labels(backend=label, operation=operation, result="success").inc()
                return result
            except Exception:
                OPERATIONS_TOTAL.labels(backend=label, operation=operation, result="error").inc()
                raise
            finally:
                OPERATION_LATENCY.labels(backend=label, operation=operation).observe(
                    time.time() - start_time
                )
        return wrapper
    return decorator
