# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/utils/retry.py
import functools
import time
from typing import Callable, Iterator, Optional


class RetryError(RuntimeError):
    """All attempts failed. __cause__ is the last error."""

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message)


def _waits(delay: float, backoff: float, max_delay: Optional[float]) -> Iterator[float]:
    wait = delay
    while True:
        yield wait if max_delay is None else min(wait, max_delay)
        wait *= backoff


def retry(
    *,
    retries: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
    backoff: float = 1.0,
    max_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations.

    retries: total number of attempts
    delay: seconds before the second attempt
    backoff: multiplier applied to the wait after every failed attempt
    max_delay: upper bound for a single wait
    retry_on: exception types to retry, anything else propagates at once
    on_retry: callback(attempt, exception), called for every failed attempt
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            waits = _waits(delay, backoff, max_delay)
            for attempt in range(1, retries + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    if on_retry:
                        on_retry(attempt, exc)
                    if attempt == retries:
                        raise RetryError(f"{fn.__name__} failed after {retries} attempts: {exc}", attempt) from exc
                    sleep(next(waits))
            raise RetryError(f"{fn.__name__} was given no attempts", 0)
        return wrapper
    return decorator
