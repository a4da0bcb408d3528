"""Circuit breaker guarding calls to external providers (LLM, maps, JWKS)."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, TypeVar

from .metrics import circuit_breaker_rejected_total, circuit_breaker_state

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STATE_GAUGE = {"closed": 0, "open": 1, "half_open": 2}


class CircuitState(Enum):
    CLOSED = "closed"  # requests allowed
    OPEN = "open"  # requests rejected until cooldown elapses
    HALF_OPEN = "half_open"  # probing recovery


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    consecutive_failures: int = 0
    circuit_opened_count: int = 0


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""


class CircuitBreaker:
    """
    Stop calling a failing upstream for a cooldown period.

    CLOSED lets every call through and counts consecutive failures; reaching
    ``failure_threshold`` flips to OPEN, which rejects calls with
    ``CircuitOpenError``. After ``cooldown_seconds`` the breaker moves to
    HALF_OPEN and lets probes through: ``success_threshold`` successes close it
    again, a single failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int | None = None,
        cooldown_seconds: float | None = None,
        success_threshold: int = 1,
        enabled: bool | None = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold if failure_threshold is not None else 3
        self.cooldown_seconds = cooldown_seconds if cooldown_seconds is not None else 300.0
        self.success_threshold = success_threshold
        self.enabled = enabled if enabled is not None else True

        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._lock = Lock()
        self._last_state_change = time.time()
        self._half_open_successes = 0
        circuit_breaker_state.labels(circuit_name=name).set(0)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if (
                self._state == CircuitState.OPEN
                and time.time() - self._last_state_change >= self.cooldown_seconds
            ):
                self._transition_to(CircuitState.HALF_OPEN)
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_state_change = time.time()
        circuit_breaker_state.labels(circuit_name=self.name).set(_STATE_GAUGE[new_state.value])

        if new_state == CircuitState.OPEN:
            self._stats.circuit_opened_count += 1
            logger.warning(
                "Circuit breaker '%s' opened after %d consecutive failures",
                self.name,
                self._stats.consecutive_failures,
            )
        elif new_state == CircuitState.CLOSED:
            self._stats.consecutive_failures = 0
            self._half_open_successes = 0
            if old_state == CircuitState.HALF_OPEN:
                logger.info("Circuit breaker '%s' closed after successful recovery", self.name)
        else:
            self._half_open_successes = 0
            logger.info("Circuit breaker '%s' half-open, probing upstream", self.name)

    def _reject(self) -> CircuitOpenError:
        self._stats.rejected_calls += 1
        circuit_breaker_rejected_total.labels(circuit_name=self.name).inc()
        return CircuitOpenError(
            f"Circuit breaker '{self.name}' is open. "
            f"Service will be retried after {self.cooldown_seconds} seconds."
        )

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a synchronous callable through the breaker."""
        if not self.enabled:
            return func(*args, **kwargs)
        if not self._can_execute():
            raise self._reject()
        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    async def call_async(
        self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Await a coroutine function through the breaker."""
        if not self.enabled:
            return await func(*args, **kwargs)
        if not self._can_execute():
            raise self._reject()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _can_execute(self) -> bool:
        return self.state != CircuitState.OPEN

    def _on_success(self) -> None:
        with self._lock:
            self._stats.total_calls += 1
            self._stats.successful_calls += 1
            self._stats.last_success_time = time.time()
            self._stats.consecutive_failures = 0
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        with self._lock:
            self._stats.total_calls += 1
            self._stats.failed_calls += 1
            self._stats.last_failure_time = time.time()
            self._stats.consecutive_failures += 1
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._stats.consecutive_failures >= self.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._stats.consecutive_failures = 0
            self._half_open_successes = 0
            self._last_state_change = time.time()
            circuit_breaker_state.labels(circuit_name=self.name).set(0)
            logger.info("Circuit breaker '%s' manually reset", self.name)

    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED


_circuit_breakers: dict[str, CircuitBreaker] = {}
_breakers_lock = Lock()


def get_circuit_breaker(
    name: str,
    *,
    failure_threshold: int | None = None,
    cooldown_seconds: float | None = None,
) -> CircuitBreaker:
    """Return the process-wide breaker registered under ``name``."""
    with _breakers_lock:
        if name not in _circuit_breakers:
            _circuit_breakers[name] = CircuitBreaker(
                name, failure_threshold=failure_threshold, cooldown_seconds=cooldown_seconds
            )
        return _circuit_breakers[name]


def reset_all_breakers() -> None:
    with _breakers_lock:
        breakers = list(_circuit_breakers.values())
    for breaker in breakers:
        breaker.reset()


__all__ = [
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitOpenError",
    "CircuitState",
    "get_circuit_breaker",
    "reset_all_breakers",
]
