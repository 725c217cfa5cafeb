"""
Circuit breaker for the summary generation providers, state kept in Redis.

States:
  - CLOSED    → calls pass through
  - OPEN      → calls short-circuit with CircuitOpenError until reset_timeout
  - HALF_OPEN → after reset_timeout, the next call is let through as a probe

State lives in one Redis hash per breaker (``cb:<name>``) so every worker
process sees the same view. If Redis is unreachable the breaker fails open:
calls go through and bookkeeping is skipped.
"""
import logging
import time

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN — service unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('anthropic', redis_client, failure_threshold=5, reset_timeout=60)
        response = cb.call(client.messages.create, model=..., messages=[...])
    """

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=5, reset_timeout=60):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    @property
    def key(self):
        return f'{self.PREFIX}:{self.name}'

    def _read(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except Exception as e:
            logger.debug("Circuit '%s' state unreadable (%s), treating as closed", self.name, e)
            return None

    def _seconds_open(self, record):
        opened_at = record.get('opened_at')
        return time.time() - float(opened_at) if opened_at else None

    @property
    def state(self):
        record = self._read()
        if not record:
            return CLOSED
        current = record.get('state', CLOSED)
        if current == OPEN:
            elapsed = self._seconds_open(record)
            if elapsed is not None and elapsed > self.reset_timeout:
                return HALF_OPEN
        return current

    @property
    def failure_count(self):
        record = self._read() or {}
        try:
            return int(record.get('failures', 0))
        except (TypeError, ValueError):
            return 0

    def get_health(self):
        """Health snapshot for /api/health."""
        record = self._read()
        if record is None:
            return {
                'name': self.name,
                'state': 'unknown',
                'failure_count': 0,
                'failure_threshold': self.failure_threshold,
                'reset_timeout': self.reset_timeout,
                'total_success': 0,
                'total_failure': 0,
                'last_error': '',
            }
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': int(record.get('failures', 0)),
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(record.get('total_success', 0)),
            'total_failure': int(record.get('total_failure', 0)),
            'last_error': record.get('last_error', ''),
        }

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Run func through the breaker; failures are counted and re-raised."""
        record = self._read()
        if record and record.get('state') == OPEN:
            elapsed = self._seconds_open(record)
            if elapsed is None or elapsed <= self.reset_timeout:
                retry_after = max(0.0, self.reset_timeout - elapsed) if elapsed is not None else None
                raise CircuitOpenError(self.name, retry_after=retry_after)
            logger.info("Circuit '%s' HALF_OPEN, probing", self.name)

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
            pipe.hset(self.key, mapping={'state': CLOSED, 'failures': 0})
            pipe.hdel(self.key, 'opened_at')
            pipe.hincrby(self.key, 'total_success', 1)
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s' success not recorded", self.name)

    def _on_failure(self, error):
        try:
            failures = self.redis.hincrby(self.key, 'failures', 1)
            pipe = self.redis.pipeline()
            pipe.hincrby(self.key, 'total_failure', 1)
            pipe.hset(self.key, 'last_error', str(error)[:200])
            if failures >= self.failure_threshold:
                pipe.hset(self.key, mapping={'state': OPEN, 'opened_at': str(time.time())})
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s' failure not recorded", self.name)
            return

        if failures >= self.failure_threshold:
            logger.warning(
                "Circuit '%s' OPENED after %d failures (threshold=%d): %s",
                self.name, failures, self.failure_threshold, error,
            )
        else:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, failures, self.failure_threshold, error)

    def reset(self):
        """Manually close the breaker and clear its failure count."""
        try:
            pipe = self.redis.pipeline()
            pipe.hset(self.key, mapping={'state': CLOSED, 'failures': 0})
            pipe.hdel(self.key, 'opened_at')
            pipe.execute()
            logger.info("Circuit '%s' manually reset to CLOSED", self.name)
        except Exception as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)


# ── Registry ──────────────────────────────────────────────────────────────

_registry = {}


def get_breaker(name, redis_client=None, **kwargs):
    """Get or create a named circuit breaker (one per name per process)."""
    if name not in _registry:
        if redis_client is None:
            from leadintel.extensions import redis_client as rc
            redis_client = rc
        _registry[name] = CircuitBreaker(name, redis_client, **kwargs)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register the breakers for every generation provider."""
    breakers = {
        'anthropic': CircuitBreaker('anthropic', redis_client, failure_threshold=5, reset_timeout=60),
        'ollama': CircuitBreaker('ollama', redis_client, failure_threshold=3, reset_timeout=30),
    }
    _registry.update(breakers)
    return breakers
