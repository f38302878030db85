"""
Per-provider circuit breaker with state shared through Redis.

All workers (and concurrent runs) talking to the same provider see the same
breaker, so a provider that is down stops being hammered by every thread.

  closed    → calls pass through, consecutive failures are counted
  open      → calls fail fast with CircuitOpenError
  half_open → reset_timeout elapsed, the next call is a probe

State lives in one Redis hash per provider: breaker:{name}. If Redis itself
is unreachable the breaker fails open and lets calls through.
"""
import logging
import time

import redis

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised instead of calling a provider whose breaker is open."""

    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is open; provider unavailable")


class CircuitBreaker:

    def __init__(self, name, redis_client, failure_threshold=5, reset_timeout=60):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    @property
    def key(self):
        return f'breaker:{self.name}'

    def _read(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except redis.RedisError as e:
            logger.debug("Breaker '%s' state unreadable, failing open: %s", self.name, e)
            return {}

    def _write(self, **values):
        try:
            self.redis.hset(self.key, mapping={k: str(v) for k, v in values.items()})
        except redis.RedisError as e:
            logger.debug("Breaker '%s' state not written: %s", self.name, e)

    @property
    def state(self):
        data = self._read()
        current = data.get('state', CLOSED)
        if current == OPEN:
            opened_at = float(data.get('opened_at') or 0)
            if time.time() - opened_at >= self.reset_timeout:
                self._write(state=HALF_OPEN)
                return HALF_OPEN
        return current

    @property
    def failure_count(self):
        return int(self._read().get('failures') or 0)

    def call(self, func, *args, **kwargs):
        current = self.state
        if current == OPEN:
            opened_at = float(self._read().get('opened_at') or time.time())
            retry_after = max(0.0, self.reset_timeout - (time.time() - opened_at))
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e, probing=current == HALF_OPEN)
            raise
        self._on_success()
        return result

    def _on_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.hset(self.key, mapping={'state': CLOSED, 'failures': '0'})
            pipe.hincrby(self.key, 'total_success', 1)
            pipe.execute()
        except redis.RedisError as e:
            logger.debug("Breaker '%s' success not recorded: %s", self.name, e)

    def _on_failure(self, error, probing=False):
        try:
            failures = self.redis.hincrby(self.key, 'failures', 1)
            self.redis.hincrby(self.key, 'total_failure', 1)
            self._write(last_error=str(error)[:200], last_failure=time.time())
        except redis.RedisError as e:
            logger.debug("Breaker '%s' failure not recorded: %s", self.name, e)
            return

        if probing or failures >= self.failure_threshold:
            self._write(state=OPEN, opened_at=time.time())
            logger.warning(
                "Circuit '%s' opened after %d consecutive failures: %s",
                self.name, failures, error,
            )
        else:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, failures, self.failure_threshold, error)

    def reset(self):
        try:
            self.redis.delete(self.key)
            logger.info("Circuit '%s' reset", self.name)
        except redis.RedisError as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)

    def get_health(self):
        data = self._read()
        return {
            'name': self.name,
            'state': self.state,
            'failures': int(data.get('failures') or 0),
            'failure_threshold': self.failure_threshold,
            'total_success': int(data.get('total_success') or 0),
            'total_failure': int(data.get('total_failure') or 0),
            'last_error': data.get('last_error', ''),
        }


# ── Registry ─────────────────────────────────────────────────────────────────

# (failure_threshold, reset_timeout) per external service
BREAKER_SETTINGS = {
    'openai': (5, 60),
    'anthropic': (5, 60),
    'ollama': (3, 30),
    'tavily': (5, 120),
    'serpapi': (5, 120),
    'firecrawl': (5, 120),
}

_registry = {}


def init_breakers(redis_client):
    """Build one breaker per external service and register them."""
    breakers = {
        name: CircuitBreaker(name, redis_client, failure_threshold=threshold, reset_timeout=timeout)
        for name, (threshold, timeout) in BREAKER_SETTINGS.items()
    }
    _registry.update(breakers)
    return breakers


def get_breaker(name):
    """Registered breaker for a service, or None when breakers are not initialised."""
    return _registry.get(name)


def reset_registry():
    _registry.clear()
