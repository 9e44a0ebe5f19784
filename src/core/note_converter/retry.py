"""Retry policy shared by every outbound HTTP call."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import requests

from .config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        if response is None:
            return False
        return response.status_code in RETRYABLE_STATUS or response.status_code >= 500
    return False


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_s: float = 1.0
    multiplier: float = 2.0
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def from_config(cls, config: RetryConfig, **overrides) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, config.max_attempts),
            backoff_s=max(0.0, config.backoff_s),
            multiplier=max(1.0, config.multiplier),
            **overrides,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""

        return self.backoff_s * (self.multiplier ** (attempt - 1))

    def call(self, func: Callable[[], T], *, description: str = "request") -> T:
        attempt = 1
        while True:
            try:
                return func()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.retryable(exc):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                self.sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1)

__all__ = ["NO_RETRY", "RETRYABLE_STATUS", "RetryPolicy", "is_retryable"]
