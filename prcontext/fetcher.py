"""Retrying remote fetcher with exponential backoff and batched fan-out.

Every call against the hosting platform goes through
:meth:`RetryingFetcher.with_retry`.  Bulk content downloads use
:meth:`RetryingFetcher.iter_batches`, which runs fixed-size windows of
concurrent calls one window at a time and reports per-item outcomes in input
order, so a single failing file never takes the rest of its window down.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from .errors import RateLimitError, TransientRemoteError
from .rate_limit import DEFAULT_RETRY_POLICY, RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")
ItemT = TypeVar("ItemT")

DEFAULT_BATCH_SIZE = 10

RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    TransientRemoteError,
    ConnectionError,
    TimeoutError,
)


@dataclass
class BatchResult(Generic[ItemT]):
    item: ItemT
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RetryingFetcher:
    """Runs remote operations under a :class:`RetryPolicy`."""

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._retry_on = retry_on

    # ------------------------------------------------------------------
    # Single operation
    # ------------------------------------------------------------------

    async def with_retry(
        self,
        operation: Callable[[], Any],
        *,
        description: str = "",
        path: str = "",
    ) -> Any:
        """Run *operation* until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument callable.  Coroutine functions are
                awaited; plain callables run in a worker thread.
            description: Operation name used in logs and hook context.
            path: Target path used in logs and hook context.

        Returns:
            Whatever *operation* returns.

        Raises:
            The last error raised by *operation* once attempts are exhausted,
            a rate-limit hook vetoes further retries, or the error is not
            retryable at all.
        """
        policy = self.policy
        delay = policy.initial_delay

        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await self._invoke(operation)
            except RateLimitError as exc:
                cooldown = exc.retry_after
                if cooldown is None:
                    cooldown = min(delay, policy.max_delay)
                context = {"operation": description, "path": path, "attempt": attempt}
                if not policy.hook_for(exc.kind)(cooldown, context):
                    logger.warning("Giving up on %s %s: %s rate limit", description, path, exc.kind)
                    raise
                if attempt == policy.max_attempts:
                    raise
                wait = cooldown
            except self._retry_on as exc:
                if attempt == policy.max_attempts:
                    logger.debug("%s %s failed after %d attempts", description, path, attempt)
                    raise
                logger.debug(
                    "%s %s failed (attempt %d/%d): %s",
                    description, path, attempt, policy.max_attempts, exc,
                )
                wait = delay

            await self._sleep(wait)
            delay = policy.next_delay(delay)

        # max_attempts >= 1 guarantees the loop returns or raises
        raise AssertionError("unreachable")

    @staticmethod
    async def _invoke(operation: Callable[[], Any]) -> Any:
        if inspect.iscoroutinefunction(operation):
            return await operation()
        result = await asyncio.to_thread(operation)
        if inspect.isawaitable(result):
            return await result
        return result

    # ------------------------------------------------------------------
    # Batched fan-out
    # ------------------------------------------------------------------

    async def iter_batches(
        self,
        items: Sequence[ItemT],
        operation: Callable[[ItemT], Any],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        description: str = "",
    ) -> AsyncIterator[List[BatchResult[ItemT]]]:
        """Yield one list of results per window, in input order.

        Windows run strictly one after another; the calls inside a window run
        concurrently and each is retried independently.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        for start in range(0, len(items), batch_size):
            window = list(items[start:start + batch_size])
            outcomes = await asyncio.gather(
                *(
                    self.with_retry(
                        functools.partial(operation, item),
                        description=description,
                        path=str(item),
                    )
                    for item in window
                ),
                return_exceptions=True,
            )
            results: List[BatchResult[ItemT]] = []
            for item, outcome in zip(window, outcomes):
                if isinstance(outcome, BaseException):
                    results.append(BatchResult(item=item, error=outcome))
                else:
                    results.append(BatchResult(item=item, value=outcome))
            yield results

    async def fetch_batch(
        self,
        items: Sequence[ItemT],
        operation: Callable[[ItemT], Any],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        description: str = "",
    ) -> List[BatchResult[ItemT]]:
        collected: List[BatchResult[ItemT]] = []
        async for window in self.iter_batches(
            items, operation, batch_size=batch_size, description=description,
        ):
            collected.extend(window)
        return collected
