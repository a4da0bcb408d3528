"""Test circuit breaker implementation."""

import asyncio
import time
from unittest.mock import Mock

import pytest
from backend.localguide.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    get_circuit_breaker,
    reset_all_breakers,
)


class UpstreamFailure(RuntimeError):
    """Stand-in for a provider error."""


class TestCircuitBreaker:
    def test_circuit_starts_closed(self):
        breaker = CircuitBreaker("test", failure_threshold=3, cooldown_seconds=1)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.is_closed()
        assert not breaker.is_open()

    def test_successful_calls_pass_through(self):
        breaker = CircuitBreaker("test", failure_threshold=3)
        func = Mock(return_value="success")

        assert breaker.call(func, "arg1", key="value") == "success"
        func.assert_called_once_with("arg1", key="value")
        assert breaker.stats.successful_calls == 1
        assert breaker.stats.failed_calls == 0

    def test_circuit_opens_after_threshold(self):
        breaker = CircuitBreaker("test", failure_threshold=3, cooldown_seconds=10)
        failing = Mock(side_effect=UpstreamFailure("boom"))

        for _ in range(2):
            with pytest.raises(UpstreamFailure):
                breaker.call(failing)
            assert breaker.state == CircuitState.CLOSED

        with pytest.raises(UpstreamFailure):
            breaker.call(failing)
        assert breaker.state == CircuitState.OPEN
        assert breaker.stats.consecutive_failures == 3
        assert breaker.stats.circuit_opened_count == 1

    def test_open_circuit_rejects_calls(self):
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_seconds=10)
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))

        func = Mock(return_value="never")
        with pytest.raises(CircuitOpenError, match="is open"):
            breaker.call(func)
        func.assert_not_called()
        assert breaker.stats.rejected_calls == 1

    def test_success_resets_failure_streak(self):
        breaker = CircuitBreaker("test", failure_threshold=2)
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        breaker.call(Mock(return_value=1))
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_after_cooldown_then_closes(self):
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_seconds=0.05)
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        assert breaker.state == CircuitState.OPEN

        time.sleep(0.06)
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.call(Mock(return_value="ok"))
        assert breaker.state == CircuitState.CLOSED

    def test_failure_while_half_open_reopens(self):
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_seconds=0.05)
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        time.sleep(0.06)
        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        assert breaker._state == CircuitState.OPEN
        assert breaker.stats.circuit_opened_count == 2

    def test_disabled_breaker_never_opens(self):
        breaker = CircuitBreaker("test", failure_threshold=1, enabled=False)
        for _ in range(3):
            with pytest.raises(UpstreamFailure):
                breaker.call(Mock(side_effect=UpstreamFailure()))
        assert breaker.state == CircuitState.CLOSED

    def test_manual_reset(self):
        breaker = CircuitBreaker("test", failure_threshold=1, cooldown_seconds=60)
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.consecutive_failures == 0


class TestAsyncCalls:
    def test_call_async_records_success_and_failure(self):
        breaker = CircuitBreaker("async-test", failure_threshold=2, cooldown_seconds=60)

        async def ok():
            return "fine"

        async def broken():
            raise UpstreamFailure("down")

        assert asyncio.run(breaker.call_async(ok)) == "fine"
        for _ in range(2):
            with pytest.raises(UpstreamFailure):
                asyncio.run(breaker.call_async(broken))
        with pytest.raises(CircuitOpenError):
            asyncio.run(breaker.call_async(ok))
        assert breaker.stats.successful_calls == 1
        assert breaker.stats.failed_calls == 2


class TestRegistry:
    def test_registry_returns_same_instance(self):
        first = get_circuit_breaker("registry-test", failure_threshold=1)
        second = get_circuit_breaker("registry-test", failure_threshold=99)
        assert first is second
        assert second.failure_threshold == 1

    def test_reset_all_breakers_closes_everything(self):
        breaker = get_circuit_breaker("registry-reset", failure_threshold=1, cooldown_seconds=60)
        with pytest.raises(UpstreamFailure):
            breaker.call(Mock(side_effect=UpstreamFailure()))
        assert breaker.is_open()
        reset_all_breakers()
        assert breaker.is_closed()
