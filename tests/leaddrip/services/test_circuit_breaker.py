"""Tests for leaddrip.services.circuit_breaker — CircuitBreaker and registry."""
import time

import pytest
import redis

from leaddrip.services.circuit_breaker import (
    CircuitBreaker, CircuitOpenError, CLOSED, OPEN, HALF_OPEN,
    BREAKER_SETTINGS, get_breaker, init_breakers, reset_registry,
)


class FakeRedis:
    """Minimal in-memory Redis fake: hashes only."""

    def __init__(self):
        self.hash_store = {}

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hash_store.setdefault(key, {})
        if field is not None:
            h[field] = value
        h.update(mapping or {})

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    def delete(self, *keys):
        for k in keys:
            self.hash_store.pop(k, None)

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that replays queued ops on execute()."""

    def __init__(self, redis_fake):
        self._redis = redis_fake
        self._ops = []

    def hset(self, key, field=None, value=None, mapping=None):
        self._ops.append(lambda: self._redis.hset(key, field, value, mapping=mapping))
        return self

    def hincrby(self, key, field, amount):
        self._ops.append(lambda: self._redis.hincrby(key, field, amount))
        return self

    def execute(self):
        for op in self._ops:
            op()
        self._ops = []


class BrokenRedis:
    """Every call raises, like an unreachable server."""

    def __getattr__(self, name):
        def _raise(*args, **kwargs):
            raise redis.ConnectionError("connection refused")
        return _raise


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cb(fake_redis):
    """Fresh circuit breaker with fake Redis."""
    return CircuitBreaker('test_svc', fake_redis, failure_threshold=3, reset_timeout=10)


def _fail():
    raise ValueError("boom")


def _trip(cb, times=3):
    for _ in range(times):
        with pytest.raises(ValueError):
            cb.call(_fail)


def _age_open_state(fake_redis, cb, seconds=20):
    fake_redis.hash_store[cb.key]['opened_at'] = str(time.time() - seconds)


class TestCircuitBreakerStates:
    """closed → open → half_open → closed."""

    def test_starts_closed(self, cb):
        assert cb.state == CLOSED

    def test_counts_failures_below_threshold(self, cb):
        _trip(cb, 2)
        assert cb.failure_count == 2
        assert cb.state == CLOSED

    def test_opens_at_threshold(self, cb):
        _trip(cb)
        assert cb.state == OPEN

    def test_open_rejects_calls_without_calling(self, cb):
        _trip(cb)
        called = []
        with pytest.raises(CircuitOpenError) as exc_info:
            cb.call(lambda: called.append(1))
        assert called == []
        assert exc_info.value.name == 'test_svc'
        assert 0 < exc_info.value.retry_after <= 10

    def test_half_open_after_timeout(self, cb, fake_redis):
        _trip(cb)
        _age_open_state(fake_redis, cb)
        assert cb.state == HALF_OPEN

    def test_success_in_half_open_closes(self, cb, fake_redis):
        _trip(cb)
        _age_open_state(fake_redis, cb)
        assert cb.call(lambda: 'recovered') == 'recovered'
        assert cb.state == CLOSED
        assert cb.failure_count == 0

    def test_failure_in_half_open_reopens_immediately(self, cb, fake_redis):
        _trip(cb)
        _age_open_state(fake_redis, cb)
        fake_redis.hash_store[cb.key]['failures'] = '0'
        with pytest.raises(ValueError):
            cb.call(_fail)
        assert cb.state == OPEN

    def test_success_resets_consecutive_failures(self, cb):
        _trip(cb, 2)
        cb.call(lambda: 'ok')
        _trip(cb, 2)
        assert cb.state == CLOSED


class TestCircuitBreakerReset:

    def test_reset_closes_circuit(self, cb):
        _trip(cb)
        cb.reset()
        assert cb.state == CLOSED
        assert cb.failure_count == 0
        assert cb.call(lambda: 'ok') == 'ok'


class TestCircuitBreakerHealth:

    def test_health_after_success_and_failure(self, cb):
        cb.call(lambda: 'ok')
        with pytest.raises(ValueError):
            cb.call(_fail)
        health = cb.get_health()
        assert health['name'] == 'test_svc'
        assert health['state'] == CLOSED
        assert health['total_success'] == 1
        assert health['total_failure'] == 1
        assert health['last_error'] == 'boom'
        assert health['failure_threshold'] == 3


class TestRedisUnavailable:
    """An unreachable Redis must never block provider calls."""

    def test_fails_open(self):
        cb = CircuitBreaker('svc', BrokenRedis(), failure_threshold=1)
        assert cb.state == CLOSED
        assert cb.call(lambda: 'ok') == 'ok'

    def test_failures_still_propagate(self):
        cb = CircuitBreaker('svc', BrokenRedis(), failure_threshold=1)
        with pytest.raises(ValueError):
            cb.call(_fail)
        assert cb.call(lambda: 'ok') == 'ok'


class TestCircuitBreakerRegistry:

    @pytest.fixture(autouse=True)
    def _clean_registry(self):
        reset_registry()
        yield
        reset_registry()

    def test_get_breaker_before_init_is_none(self):
        assert get_breaker('openai') is None

    def test_init_registers_every_service(self, fake_redis):
        breakers = init_breakers(fake_redis)
        assert set(breakers) == set(BREAKER_SETTINGS)
        assert get_breaker('tavily') is breakers['tavily']
        threshold, timeout = BREAKER_SETTINGS['ollama']
        assert get_breaker('ollama').failure_threshold == threshold
        assert get_breaker('ollama').reset_timeout == timeout
