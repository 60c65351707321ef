"""
Circuit breaker implementation using pybreaker library.
Provides Redis-backed state storage so every API worker sees the same gateway health.
"""
import logging
from datetime import datetime

import redis
import pybreaker

from app.core.config import settings
from app.utils.metrics import circuit_breaker_state


logger = logging.getLogger("circuit_breaker")

GATEWAY_BREAKER = "payment_gateway"


class RedisCircuitBreakerStorage(pybreaker.CircuitBreakerStorage):
    """
    Redis-backed storage for circuit breaker state (distributed-friendly).

    Redis errors never reach the caller: reads fall back to a closed breaker with
    zeroed counters, writes are dropped with a warning.
    """

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._name = name
        self.client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self._state_key = f"cb:{name}:state"
        self._counter_key = f"cb:{name}:counter"
        self._success_key = f"cb:{name}:success"
        self._opened_at_key = f"cb:{name}:opened_at"

    def _unavailable(self, op: str, exc: redis.RedisError) -> None:
        logger.warning(
            "circuit_breaker_storage_unavailable",
            extra={"breaker_name": self._name, "reason": op, "error": type(exc).__name__},
        )

    def _get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            self._unavailable("get", e)
            return None

    def _set(self, key: str, value: str, ex: int) -> None:
        try:
            self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            self._unavailable("set", e)

    def _incr(self, key: str) -> None:
        try:
            self.client.incr(key)
            self.client.expire(key, settings.cb_open_seconds)
        except redis.RedisError as e:
            self._unavailable("incr", e)

    def _delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            self._unavailable("delete", e)

    @property
    def state(self) -> str:
        return self._get(self._state_key) or pybreaker.STATE_CLOSED

    @state.setter
    def state(self, value: str) -> None:
        self._set(self._state_key, value, ex=settings.cb_open_seconds * 2)
        circuit_breaker_state.labels(name=self._name).set(
            1 if value == pybreaker.STATE_OPEN else 0
        )

    @property
    def counter(self) -> int:
        count = self._get(self._counter_key)
        return int(count) if count else 0

    @counter.setter
    def counter(self, value: int) -> None:
        self._set(self._counter_key, str(value), ex=settings.cb_open_seconds)

    def increment_counter(self) -> None:
        self._incr(self._counter_key)

    def reset_counter(self) -> None:
        self._delete(self._counter_key)

    @property
    def success_counter(self) -> int:
        count = self._get(self._success_key)
        return int(count) if count else 0

    def increment_success_counter(self) -> None:
        self._incr(self._success_key)

    def reset_success_counter(self) -> None:
        self._delete(self._success_key)

    @property
    def opened_at(self) -> datetime | None:
        raw = self._get(self._opened_at_key)
        return datetime.fromisoformat(raw) if raw else None

    @opened_at.setter
    def opened_at(self, value: datetime) -> None:
        self._set(self._opened_at_key, value.isoformat(), ex=settings.cb_open_seconds * 2)


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Listener for circuit breaker events (logging/metrics)."""

    def __init__(self, name: str) -> None:
        self.name = name

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        logger.warning(
            "circuit_breaker_state_change",
            extra={
                "breaker_name": self.name,
                "old_state": getattr(old_state, "name", str(old_state)),
                "new_state": getattr(new_state, "name", str(new_state)),
            },
        )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        logger.warning(
            "circuit_breaker_failure",
            extra={
                "breaker_name": self.name,
                "error": type(exc).__name__,
            },
        )


_breakers: dict[str, pybreaker.CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> pybreaker.CircuitBreaker:
    """Get or create a circuit breaker by name."""
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            fail_max=settings.cb_failure_threshold,
            reset_timeout=settings.cb_open_seconds,
            state_storage=RedisCircuitBreakerStorage(name),
            listeners=[CircuitBreakerListener(name)],
        )
    return _breakers[name]
