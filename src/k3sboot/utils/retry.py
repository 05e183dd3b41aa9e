# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

import time
import functools
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class RetryPolicy:
    """
    attempts:  total attempts, None for unbounded
    delay:     seconds before the second attempt
    max_delay: ceiling for the doubling delay
    """
    attempts: Optional[int] = 10
    delay: float = 10.0
    max_delay: float = 60.0

    def backoff(self, attempt: int) -> float:
        # doubling stops at the ceiling, so any attempt number is safe
        wait = self.delay
        for _ in range(attempt - 1):
            if wait >= self.max_delay:
                break
            wait *= 2
        return min(wait, self.max_delay)


def retry(
    *,
    policy: RetryPolicy,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception, float], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Retry decorator for idempotent operations.

    Exceptions outside retry_on propagate at once. When attempts run out the
    last exception is re-raised unchanged.
    on_retry: callback(attempt, exception, next_delay)
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                attempt += 1
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    if policy.attempts is not None and attempt >= policy.attempts:
                        raise
                    wait = policy.backoff(attempt)
                    if on_retry:
                        on_retry(attempt, exc, wait)
                    sleep(wait)
        return wrapper
    return decorator
