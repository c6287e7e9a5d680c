"""
Redis-backed circuit breakers for the two outbound providers (MQL, OpenAI).

States:
  - CLOSED    → calls pass through
  - OPEN      → failure_threshold consecutive failures; calls raise CircuitOpenError
  - HALF_OPEN → reset_timeout elapsed since the last failure; one probe call allowed

Redis being unreachable never blocks a provider call: the breaker reads as CLOSED.
"""
import logging
import time
from functools import wraps

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'

# name -> (failure_threshold, reset_timeout seconds)
BREAKER_SETTINGS = {
    'mql': (3, 300),
    'openai': (5, 60),
}


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN, provider unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('mql', redis_client, failure_threshold=3, reset_timeout=300)
        response = cb.call(requests.post, url, json=body)
    """

    PREFIX = 'leaddesk:cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self):
        try:
            current = self.redis.get(self._key('state'))
            if current is None:
                return CLOSED
            if current == OPEN and self._seconds_since_failure() > self.reset_timeout:
                self.redis.set(self._key('state'), HALF_OPEN)
                return HALF_OPEN
            return current
        except Exception:
            return CLOSED

    @property
    def failure_count(self):
        try:
            value = self.redis.get(self._key('failures'))
            return int(value) if value else 0
        except Exception:
            return 0

    def _seconds_since_failure(self):
        last = self.redis.get(self._key('last_failure'))
        if not last:
            return float('inf')
        return time.time() - float(last)

    def get_health(self):
        """State and lifetime success/failure counters, for GET /health."""
        try:
            data = self.redis.hgetall(self._key('health'))
        except Exception:
            data = {}
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_error': data.get('last_error', ''),
        }

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker, re-raising whatever it raises."""
        if self.state == OPEN:
            try:
                retry_after = max(0, self.reset_timeout - self._seconds_since_failure())
            except Exception:
                retry_after = None
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.hincrby(self._key('health'), 'success', 1)
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s': could not record success", self.name)

    def _on_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            pipe = self.redis.pipeline()
            pipe.set(self._key('last_failure'), str(time.time()))
            pipe.hincrby(self._key('health'), 'failure', 1)
            pipe.hset(self._key('health'), 'last_error', str(error)[:200])
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s': could not record failure", self.name)
            return

        if count >= self.failure_threshold:
            self.redis.set(self._key('state'), OPEN)
            logger.warning(
                "Circuit '%s' OPENED after %d failures (threshold=%d): %s",
                self.name, count, self.failure_threshold, error,
            )
        else:
            logger.info("Circuit '%s' failure %d/%d: %s", self.name, count, self.failure_threshold, error)

    def reset(self):
        """Force the breaker back to CLOSED."""
        try:
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.delete(self._key('last_failure'))
            pipe.execute()
            logger.info("Circuit '%s' manually reset to CLOSED", self.name)
        except Exception as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)

    def protect(self, func):
        """Decorator form of call()."""
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper


# ── Registry ──────────────────────────────────────────────────────────────

_registry = {}


def get_breaker(name, redis_client=None):
    """Get or lazily create the named breaker."""
    if name not in _registry:
        if redis_client is None:
            from leaddesk.extensions import redis_client as rc
            redis_client = rc
        threshold, timeout = BREAKER_SETTINGS.get(name, (3, 300))
        _registry[name] = CircuitBreaker(name, redis_client, failure_threshold=threshold, reset_timeout=timeout)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """(Re)create every configured breaker against the given Redis client."""
    breakers = {
        name: CircuitBreaker(name, redis_client, failure_threshold=threshold, reset_timeout=timeout)
        for name, (threshold, timeout) in BREAKER_SETTINGS.items()
    }
    _registry.update(breakers)
    return breakers
