"""Retry with exponential backoff and per-backend circuit breaking."""

import asyncio
import logging
import random
import threading
import time
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from .config import CircuitBreakerConfig, RetryConfig
from .errors import (
    CircuitOpenError,
    PartialReconcileError,
    ReplicationError,
    RetriesExhaustedError,
    is_retryable,
)
from .metrics import RETRY_ATTEMPTS, record_circuit_state

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryManager:
    """Runs an async operation with bounded exponential backoff.

    Sleeping goes through ``asyncio.sleep``, so cancelling the calling task
    interrupts the wait and the ``CancelledError`` propagates as is.
    """

    def __init__(self, config: Optional[RetryConfig] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 jitter_source: Callable[[float, float], float] = random.uniform):
        self.config = config
        self._sleep = sleep
        self._jitter_source = jitter_source

    def _settings(self) -> RetryConfig:
        if self.config is None:
            self.config = RetryConfig()
        return self.config

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        settings = self._settings()
        delay = settings.initial_delay * (settings.multiplier ** (attempt - 1))
        delay = min(delay, settings.max_delay)
        if settings.jitter:
            spread = delay * settings.jitter
            delay += self._jitter_source(-spread, spread)
        return max(0.0, min(delay, settings.max_delay))

    async def execute(self, operation: Callable[[], Awaitable[T]], name: str = "operation",
                      retryable: Callable[[BaseException], bool] = is_retryable) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory
            name: Label used in logs and metrics
            retryable: Predicate deciding whether an error deserves another attempt

        Returns:
            The operation's result

        Raises:
            RetriesExhaustedError: Wrapping the last error when every attempt failed
            Exception: Any non-retryable error, unchanged
        """
        attempts = max(1, self._settings().max_attempts)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not retryable(e):
                    raise
                last_error = e
                if attempt == attempts:
                    break
                delay = self.delay_for(attempt)
                RETRY_ATTEMPTS.labels(operation=name).inc()
                logger.warning(f"{name} failed (attempt {attempt}/{attempts}): {e}; retrying in {delay:.2f}s")
                await self._sleep(delay)

        logger.error(f"{name} failed after {attempts} attempts: {last_error}")
        raise RetriesExhaustedError(attempts, last_error) from last_error


def counts_as_failure(error: BaseException) -> bool:
    """Decide whether an error says something about backend health.

    Replication errors count only when transient; a partial write is judged by
    the step that failed. Anything outside the hierarchy counts.
    """
    if isinstance(error, PartialReconcileError) and error.__cause__ is not None:
        error = error.__cause__
    if isinstance(error, ReplicationError):
        return is_retryable(error)
    return True


class CircuitBreaker:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._state = self.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at = 0.0
        self._trial_in_flight = False
        self.total_calls = 0
        self.total_failures = 0
        self.rejected_calls = 0

    def _settings(self) -> CircuitBreakerConfig:
        if self.config is None:
            self.config = CircuitBreakerConfig()
        return self.config

    @property
    def state(self) -> str:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _set_state(self, state: str):
        if state != self._state:
            logger.info(f"Circuit breaker for {self.name}: {self._state} -> {state}")
            self._state = state
            record_circuit_state(self.name, state)

    def _maybe_half_open(self):
        if self._state == self.OPEN and self._clock() - self._opened_at >= self._settings().cooldown_seconds:
            self._set_state(self.HALF_OPEN)
            self._successes = 0
            self._trial_in_flight = False

    def _admit(self):
        with self._lock:
            self._maybe_half_open()
            if self._state == self.OPEN or (self._state == self.HALF_OPEN and self._trial_in_flight):
                self.rejected_calls += 1
                raise CircuitOpenError(self.name)
            if self._state == self.HALF_OPEN:
                self._trial_in_flight = True
            self.total_calls += 1

    def record_success(self):
        with self._lock:
            self._trial_in_flight = False
            if self._state == self.HALF_OPEN:
                self._successes += 1
                if self._successes >= self._settings().success_threshold:
                    self._set_state(self.CLOSED)
                    self._failures = 0
            else:
                self._failures = 0

    def record_failure(self):
        with self._lock:
            self._trial_in_flight = False
            self.total_failures += 1
            if self._state == self.HALF_OPEN:
                self._opened_at = self._clock()
                self._set_state(self.OPEN)
                return
            self._failures += 1
            if self._failures >= self._settings().failure_threshold:
                self._opened_at = self._clock()
                self._set_state(self.OPEN)

    def _release_trial(self):
        with self._lock:
            self._trial_in_flight = False

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: Without calling ``operation`` while the circuit is open
        """
        self._admit()
        try:
            result = await operation()
        except Exception as e:
            if counts_as_failure(e):
                self.record_failure()
            else:
                self._release_trial()
            raise
        except BaseException:
            self._release_trial()
            raise
        self.record_success()
        return result

    def reset(self):
        with self._lock:
            self._failures = 0
            self._successes = 0
            self._trial_in_flight = False
            self._set_state(self.CLOSED)

    def get_metrics(self) -> Dict:
        with self._lock:
            self._maybe_half_open()
            return {
                "state": self._state,
                "consecutive_failures": self._failures,
                "total_calls": self.total_calls,
                "total_failures": self.total_failures,
                "rejected_calls": self.rejected_calls,
            }


class CircuitBreakerRegistry:
    """One circuit breaker per backend, created on first use."""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, self.config or CircuitBreakerConfig(), self._clock)
                self._breakers[name] = breaker
            return breaker

    def states(self) -> Dict[str, str]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.state for b in breakers}
