"""Retry, timeout and per-service circuit breaking for model and tool calls."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, TypeVar

from admissions_agent.core.errors import CircuitOpenError, OperationTimeoutError
from admissions_agent.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    retryable_errors: tuple[str, ...] = (
        "ECONNRESET",
        "ETIMEDOUT",
        "ENOTFOUND",
        "ConnectionError",
        "TimeoutError",
        "429",
        "500",
        "502",
        "503",
        "504",
    )

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry following `attempt` (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


DEFAULT_RETRY_CONFIG = RetryConfig()


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    half_open_requests: int = 2


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitStatus:
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    last_failure_at: float = 0.0
    half_open_successes: int = 0


def is_retryable(error: BaseException, codes: tuple[str, ...]) -> bool:
    """Match the error's message and class names against retryable codes."""
    names = " ".join(cls.__name__ for cls in type(error).__mro__)
    haystack = f"{error} {names}"
    return any(code in haystack for code in codes)


class ResilienceService:
    """Holds circuit state per service name; retry and timeout are stateless helpers."""

    def __init__(
        self,
        breaker: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._breaker = breaker or CircuitBreakerConfig()
        self._clock = clock
        self._sleep = sleep
        self._circuits: dict[str, CircuitStatus] = {}

    async def with_retry(
        self,
        fn: Callable[[], Awaitable[T]],
        config: RetryConfig = DEFAULT_RETRY_CONFIG,
        retry_if: Callable[[BaseException], bool] | None = None,
        operation: str = "operation",
    ) -> T:
        attempt = 1
        while True:
            try:
                return await fn()
            except Exception as exc:
                retryable = retry_if(exc) if retry_if else is_retryable(exc, config.retryable_errors)
                if not retryable or attempt >= config.max_attempts:
                    raise
                delay = config.delay_for(attempt)
                logger.warning(
                    "retrying",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    delay=delay,
                    error=str(exc),
                )
                await self._sleep(delay)
                attempt += 1

    async def with_timeout(
        self, fn: Callable[[], Awaitable[T]], seconds: float, operation: str = "operation"
    ) -> T:
        try:
            return await asyncio.wait_for(fn(), timeout=seconds)
        except OperationTimeoutError:
            raise
        except TimeoutError as exc:
            raise OperationTimeoutError(operation, seconds) from exc

    async def with_circuit_breaker(self, service: str, fn: Callable[[], Awaitable[T]]) -> T:
        circuit = self._circuits.setdefault(service, CircuitStatus())

        if circuit.state == CircuitState.OPEN:
            if self._clock() - circuit.last_failure_at >= self._breaker.reset_timeout:
                circuit.state = CircuitState.HALF_OPEN
                circuit.half_open_successes = 0
                logger.info("circuit_half_open", service=service)
            else:
                raise CircuitOpenError(service)

        try:
            result = await fn()
        except Exception:
            self._record_failure(service, circuit)
            raise
        self._record_success(service, circuit)
        return result

    async def execute(
        self,
        service: str,
        fn: Callable[[], Awaitable[T]],
        retry: RetryConfig | None = DEFAULT_RETRY_CONFIG,
        timeout: float | None = None,
    ) -> T:
        """circuit(retry(timeout(fn)))."""

        async def _timed() -> T:
            if timeout is None:
                return await fn()
            return await self.with_timeout(fn, timeout, operation=service)

        async def _retried() -> T:
            if retry is None:
                return await _timed()
            return await self.with_retry(_timed, retry, operation=service)

        return await self.with_circuit_breaker(service, _retried)

    def get_circuit_status(self, service: str) -> CircuitStatus:
        return self._circuits.get(service, CircuitStatus())

    def reset_circuit(self, service: str) -> None:
        self._circuits.pop(service, None)
        logger.info("circuit_reset", service=service)

    def _record_failure(self, service: str, circuit: CircuitStatus) -> None:
        circuit.failures += 1
        circuit.last_failure_at = self._clock()
        if circuit.state == CircuitState.HALF_OPEN or circuit.failures >= self._breaker.failure_threshold:
            if circuit.state != CircuitState.OPEN:
                logger.warning("circuit_opened", service=service, failures=circuit.failures)
            circuit.state = CircuitState.OPEN

    def _record_success(self, service: str, circuit: CircuitStatus) -> None:
        if circuit.state == CircuitState.HALF_OPEN:
            circuit.half_open_successes += 1
            if circuit.half_open_successes >= self._breaker.half_open_requests:
                circuit.state = CircuitState.CLOSED
                circuit.failures = 0
                logger.info("circuit_closed", service=service)
        else:
            circuit.failures = 0
