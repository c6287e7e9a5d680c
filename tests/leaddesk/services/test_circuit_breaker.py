"""Tests for the circuit breaker state machine."""
import time
import pytest
from unittest.mock import MagicMock

from leaddesk.services.circuit_breaker import (
    CircuitBreaker, CircuitOpenError, CLOSED, OPEN, HALF_OPEN, BREAKER_SETTINGS,
    get_breaker, get_all_breakers, init_breakers, _registry,
)


@pytest.fixture
def cb(fake_breakers):
    """Breaker on the shared in-memory Redis, separate from the provider breakers."""
    return CircuitBreaker('test_svc', fake_breakers, failure_threshold=3, reset_timeout=10)


def _fail():
    raise ValueError("boom")


def _trip(cb):
    for _ in range(cb.failure_threshold):
        with pytest.raises(ValueError):
            cb.call(_fail)


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

class TestCircuitBreakerStates:
    """CLOSED → OPEN → HALF_OPEN → CLOSED."""

    def test_starts_closed(self, cb):
        assert cb.state == CLOSED

    def test_counts_failures_below_threshold(self, cb):
        for _ in range(2):
            with pytest.raises(ValueError):
                cb.call(_fail)
        assert cb.failure_count == 2
        assert cb.state == CLOSED

    def test_opens_at_threshold(self, cb):
        _trip(cb)
        assert cb.state == OPEN

    def test_open_rejects_without_calling(self, cb):
        _trip(cb)
        func = MagicMock()
        with pytest.raises(CircuitOpenError) as exc_info:
            cb.call(func)
        func.assert_not_called()
        assert exc_info.value.name == 'test_svc'
        assert 0 <= exc_info.value.retry_after <= 10

    def test_half_open_after_timeout(self, cb, fake_breakers):
        _trip(cb)
        fake_breakers.get_store[cb._key('last_failure')] = str(time.time() - 20)
        assert cb.state == HALF_OPEN

    def test_success_in_half_open_closes(self, cb, fake_breakers):
        _trip(cb)
        fake_breakers.get_store[cb._key('last_failure')] = str(time.time() - 20)
        assert cb.call(lambda: 'recovered') == 'recovered'
        assert cb.state == CLOSED
        assert cb.failure_count == 0

    def test_success_resets_failure_count(self, cb):
        with pytest.raises(ValueError):
            cb.call(_fail)
        cb.call(lambda: 'ok')
        assert cb.failure_count == 0

    def test_redis_down_reads_closed(self):
        broken = MagicMock()
        broken.get.side_effect = ConnectionError('redis down')
        broken.incr.side_effect = ConnectionError('redis down')
        broken.pipeline.side_effect = ConnectionError('redis down')
        cb = CircuitBreaker('svc', broken)
        assert cb.state == CLOSED
        assert cb.call(lambda: 'ok') == 'ok'
        with pytest.raises(ValueError):
            cb.call(_fail)


class TestCircuitBreakerReset:
    def test_reset_closes_circuit(self, cb):
        _trip(cb)
        cb.reset()
        assert cb.state == CLOSED
        assert cb.failure_count == 0
        assert cb.call(lambda: 'ok') == 'ok'


class TestCircuitBreakerHealth:
    def test_health_counters(self, cb):
        cb.call(lambda: 'ok')
        with pytest.raises(ValueError):
            cb.call(_fail)
        health = cb.get_health()
        assert health == {
            'name': 'test_svc',
            'state': CLOSED,
            'failure_count': 1,
            'failure_threshold': 3,
            'total_success': 1,
            'total_failure': 1,
            'last_error': 'boom',
        }


class TestCircuitBreakerDecorator:
    def test_protect(self, cb):
        @cb.protect
        def double(x):
            return x * 2
        assert double(5) == 10

    def test_protect_tracks_failures(self, cb):
        @cb.protect
        def broken():
            raise RuntimeError("fail")
        with pytest.raises(RuntimeError):
            broken()
        assert cb.failure_count == 1


class TestCircuitBreakerRegistry:
    def test_init_breakers_registers_providers(self, fake_breakers):
        breakers = init_breakers(fake_breakers)
        assert set(breakers) == {'mql', 'openai'}
        assert get_all_breakers()['mql'] is breakers['mql']
        assert breakers['mql'].failure_threshold == BREAKER_SETTINGS['mql'][0]
        assert breakers['openai'].reset_timeout == BREAKER_SETTINGS['openai'][1]

    def test_get_breaker_creates_on_demand(self, fake_breakers):
        cb = get_breaker('new_service', fake_breakers)
        assert cb.name == 'new_service'
        assert get_breaker('new_service') is cb
        assert 'new_service' in _registry

    def test_breakers_keep_separate_state(self, fake_breakers):
        for _ in range(3):
            with pytest.raises(ValueError):
                get_breaker('mql').call(_fail)
        assert get_breaker('mql').state == OPEN
        assert get_breaker('openai').state == CLOSED
