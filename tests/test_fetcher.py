"""Tests for the retrying fetcher and its batched fan-out."""

import asyncio
import logging

import pytest

from conftest import SleepRecorder
from prcontext.errors import RateLimitError, TransientRemoteError
from prcontext.fetcher import RetryingFetcher
from prcontext.rate_limit import RetryPolicy, policy_from_config


class Flaky:
    """Callable that raises the queued errors before returning *value*."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def run(coro):
    return asyncio.run(coro)


# ===================================================================
# with_retry
# ===================================================================

def test_succeeds_after_two_failures(fast_fetcher, sleep_recorder):
    operation = Flaky([TransientRemoteError("503"), TransientRemoteError("503")], value="content")

    assert run(fast_fetcher.with_retry(operation, description="get_file_content", path="a.ts")) == "content"

    assert operation.calls == 3
    assert sleep_recorder.delays == [1.0, 2.0]
    first, second = sleep_recorder.delays
    assert first <= second <= fast_fetcher.policy.max_delay


def test_gives_up_with_last_error(fast_fetcher, sleep_recorder):
    errors = [TransientRemoteError("one"), ConnectionError("two"), TimeoutError("three")]
    operation = Flaky(errors)

    with pytest.raises(TimeoutError, match="three"):
        run(fast_fetcher.with_retry(operation))

    assert operation.calls == 3
    assert sleep_recorder.delays == [1.0, 2.0]


def test_backoff_is_capped():
    sleeper = SleepRecorder()
    fetcher = RetryingFetcher(RetryPolicy(max_attempts=5, initial_delay=4.0, max_delay=10.0), sleep=sleeper)
    operation = Flaky([TransientRemoteError("x")] * 5)

    with pytest.raises(TransientRemoteError):
        run(fetcher.with_retry(operation))

    assert sleeper.delays == [4.0, 8.0, 10.0, 10.0]


def test_non_retryable_error_propagates_immediately(fast_fetcher, sleep_recorder):
    operation = Flaky([KeyError("bad payload")])

    with pytest.raises(KeyError):
        run(fast_fetcher.with_retry(operation))

    assert operation.calls == 1
    assert sleep_recorder.delays == []


def test_coroutine_operations_are_awaited(fast_fetcher):
    calls = []

    async def operation():
        calls.append("called")
        return 42

    assert run(fast_fetcher.with_retry(operation)) == 42
    assert calls == ["called"]


# ===================================================================
# Rate limits
# ===================================================================

def test_rate_limit_uses_provider_cooldown(sleep_recorder):
    seen = []

    def on_rate_limit(retry_after, context):
        seen.append((retry_after, dict(context)))
        return True

    fetcher = RetryingFetcher(RetryPolicy(on_rate_limit=on_rate_limit), sleep=sleep_recorder)
    operation = Flaky([RateLimitError("quota", kind="primary", retry_after=5.0)], value="done")

    assert run(fetcher.with_retry(operation, description="list_directory", path="src")) == "done"

    assert sleep_recorder.delays == [5.0]
    assert seen == [(5.0, {"operation": "list_directory", "path": "src", "attempt": 1})]


def test_rate_limit_waits_full_provider_cooldown(fast_fetcher, sleep_recorder, caplog):
    """A quota reset beyond max_delay is waited out, not retried early."""
    operation = Flaky([RateLimitError("quota", kind="primary", retry_after=60.0)], value="done")

    with caplog.at_level(logging.WARNING, logger="prcontext.rate_limit"):
        assert run(fast_fetcher.with_retry(operation)) == "done"

    assert sleep_recorder.delays == [60.0]
    assert "Retrying after 60.0 seconds" in caplog.text


def test_rate_limit_without_cooldown_falls_back_to_backoff(fast_fetcher, sleep_recorder):
    operation = Flaky([RateLimitError("quota"), RateLimitError("quota")])

    run(fast_fetcher.with_retry(operation))

    assert sleep_recorder.delays == [1.0, 2.0]


def test_hook_can_stop_retries(sleep_recorder):
    fetcher = RetryingFetcher(
        RetryPolicy(on_rate_limit=lambda retry_after, context: False), sleep=sleep_recorder,
    )
    operation = Flaky([RateLimitError("quota", retry_after=1.0)])

    with pytest.raises(RateLimitError):
        run(fetcher.with_retry(operation))

    assert operation.calls == 1
    assert sleep_recorder.delays == []


def test_secondary_limit_goes_to_its_own_hook(sleep_recorder):
    primary, secondary = [], []
    policy = RetryPolicy(
        on_rate_limit=lambda retry_after, context: primary.append(retry_after) or True,
        on_secondary_rate_limit=lambda retry_after, context: secondary.append(retry_after) or True,
    )
    fetcher = RetryingFetcher(policy, sleep=sleep_recorder)
    operation = Flaky([RateLimitError("slow down", kind="secondary", retry_after=2.0)])

    run(fetcher.with_retry(operation))

    assert primary == []
    assert secondary == [2.0]


def test_default_hook_logs_a_warning(fast_fetcher, caplog):
    operation = Flaky([RateLimitError("quota", retry_after=1.0)])

    with caplog.at_level(logging.WARNING, logger="prcontext.rate_limit"):
        run(fast_fetcher.with_retry(operation, description="get_file_content", path="src/a.ts"))

    assert "Request quota exhausted for get_file_content src/a.ts" in caplog.text


# ===================================================================
# Batches
# ===================================================================

def test_fetch_batch_keeps_input_order_and_isolates_failures(fast_fetcher):
    def fetch(item):
        if item == "c":
            raise ValueError("corrupt")
        return item.upper()

    results = run(fast_fetcher.fetch_batch(["a", "b", "c", "d"], fetch, batch_size=2))

    assert [r.item for r in results] == ["a", "b", "c", "d"]
    assert [r.value for r in results if r.ok] == ["A", "B", "D"]
    assert isinstance(results[2].error, ValueError)


def test_failed_item_is_retried_independently(fast_fetcher, sleep_recorder):
    attempts = {"a": 0, "b": 0}

    def fetch(item):
        attempts[item] += 1
        if item == "b" and attempts[item] < 2:
            raise TransientRemoteError("blip")
        return item

    results = run(fast_fetcher.fetch_batch(["a", "b"], fetch))

    assert all(r.ok for r in results)
    assert attempts == {"a": 1, "b": 2}
    assert sleep_recorder.delays == [1.0]


def test_windows_run_one_at_a_time(fast_fetcher):
    events = []
    in_flight = 0
    peak = 0

    async def fetch(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        events.append(("start", item))
        await asyncio.sleep(0)
        events.append(("end", item))
        in_flight -= 1
        return item

    async def collect():
        return [window async for window in fast_fetcher.iter_batches(list(range(7)), fetch, batch_size=3)]

    windows = run(collect())

    assert [[r.item for r in window] for window in windows] == [[0, 1, 2], [3, 4, 5], [6]]
    assert peak == 3
    # nothing from the second window starts before the first window is done
    last_end_first = max(i for i, e in enumerate(events) if e[0] == "end" and e[1] < 3)
    first_start_second = min(i for i, e in enumerate(events) if e[0] == "start" and e[1] >= 3)
    assert last_end_first < first_start_second


def test_invalid_batch_size(fast_fetcher):
    with pytest.raises(ValueError):
        run(fast_fetcher.fetch_batch(["a"], lambda item: item, batch_size=0))


# ===================================================================
# Policy
# ===================================================================

def test_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(initial_delay=-1)


def test_policy_from_config():
    policy = policy_from_config({"max_attempts": 5, "max_delay": 30})

    assert policy.max_attempts == 5
    assert policy.max_delay == 30.0
    assert policy.initial_delay == 1.0
    assert policy_from_config() == RetryPolicy()
