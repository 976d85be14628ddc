"""
Retry Logic with Exponential Backoff

Wraps calls to the inference service. Only throttling is retried; every
other failure propagates on the first attempt so that bad requests and
outages surface immediately instead of burning the retry budget.
"""
from __future__ import annotations
import logging
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, TypeVar

from jdmatch.observability import counter

from .provider_base import FailureKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior"""
    max_retries: int = 5
    initial_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    jitter: bool = False  # +/- 10% when enabled

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be >= 0")


def failure_kind(exception: BaseException) -> FailureKind:
    """Classify an exception raised by an invoked operation.

    Clients attach a ``kind`` attribute (see ``InferenceError``); anything
    without one is treated as a permanent failure.
    """
    kind = getattr(exception, "kind", None)
    if isinstance(kind, FailureKind):
        return kind
    return FailureKind.OTHER


def calculate_delay(retry_count: int, config: RetryConfig) -> float:
    """Delay in seconds before retry number ``retry_count`` (0-based)."""
    delay = config.initial_delay_ms * (config.backoff_multiplier ** retry_count) / 1000.0
    if config.jitter:
        delay += delay * 0.1 * (2 * random.random() - 1)
    return max(0.0, delay)


class ResilientInvoker:
    """Runs an operation, backing off exponentially while it is throttled.

    The retry counter is local to each ``invoke`` call.
    """

    def __init__(self, config: Optional[RetryConfig] = None, sleep: Callable[[float], None] = time.sleep):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def invoke(self, operation: Callable[[], T], description: str = "operation") -> T:
        retries = 0
        while True:
            try:
                result = operation()
            except Exception as e:
                kind = failure_kind(e)
                if kind is not FailureKind.RATE_LIMITED:
                    logger.debug("%s failed with non-retryable error: %s", description, e)
                    raise
                if retries >= self.config.max_retries:
                    logger.error("%s still throttled after %d retries: %s", description, retries, e)
                    raise
                delay = calculate_delay(retries, self.config)
                counter("llm.retry.throttled")
                logger.warning(
                    "%s throttled. Retrying in %.1fs... (attempt %d/%d)",
                    description, delay, retries + 1, self.config.max_retries,
                )
                self._sleep(delay)
                retries += 1
                continue

            if retries > 0:
                logger.info("%s succeeded after %d retries", description, retries)
            return result


def invoke(
    operation: Callable[[], T],
    max_retries: int = 5,
    initial_delay_ms: int = 1000,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Functional form of ``ResilientInvoker.invoke``."""
    invoker = ResilientInvoker(RetryConfig(max_retries=max_retries, initial_delay_ms=initial_delay_ms), sleep=sleep)
    return invoker.invoke(operation)


def retry_on_rate_limit(config: Optional[RetryConfig] = None):
    """Decorator form: retry the wrapped function while it is throttled."""
    invoker = ResilientInvoker(config)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return invoker.invoke(lambda: func(*args, **kwargs), description=func.__name__)
        return wrapper
    return decorator
