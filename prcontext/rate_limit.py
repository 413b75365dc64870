"""Retry constants and rate-limit hooks for calls against the hosting platform."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 10.0
BACKOFF_MULTIPLIER = 2.0

# (retry_after_seconds, context) -> keep retrying?
RateLimitHook = Callable[[float, Mapping[str, Any]], bool]


def _describe(context: Mapping[str, Any]) -> str:
    operation = context.get("operation") or "request"
    path = context.get("path") or ""
    return f"{operation} {path}".strip()


def warn_on_rate_limit(retry_after: float, context: Mapping[str, Any]) -> bool:
    logger.warning(
        "Request quota exhausted for %s. Retrying after %s seconds.",
        _describe(context), retry_after,
    )
    return True


def warn_on_secondary_rate_limit(retry_after: float, context: Mapping[str, Any]) -> bool:
    logger.warning(
        "Secondary rate limit hit for %s. Retrying after %s seconds.",
        _describe(context), retry_after,
    )
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How hard the fetcher tries before giving up on a remote call."""
    max_attempts: int = MAX_RETRIES
    initial_delay: float = INITIAL_RETRY_DELAY
    max_delay: float = MAX_RETRY_DELAY
    multiplier: float = BACKOFF_MULTIPLIER
    on_rate_limit: RateLimitHook = warn_on_rate_limit
    on_secondary_rate_limit: RateLimitHook = warn_on_secondary_rate_limit

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")

    def hook_for(self, kind: str) -> RateLimitHook:
        if kind == "secondary":
            return self.on_secondary_rate_limit
        return self.on_rate_limit

    def next_delay(self, delay: float) -> float:
        return min(delay * self.multiplier, self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


def policy_from_config(values: Optional[Dict[str, Any]] = None) -> RetryPolicy:
    """Build a policy from a ``[retry]`` config section, keeping default hooks."""
    values = values or {}
    return RetryPolicy(
        max_attempts=int(values.get("max_attempts", MAX_RETRIES)),
        initial_delay=float(values.get("initial_delay", INITIAL_RETRY_DELAY)),
        max_delay=float(values.get("max_delay", MAX_RETRY_DELAY)),
    )
