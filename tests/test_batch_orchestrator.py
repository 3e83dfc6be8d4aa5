"""
Batch orchestrator: bounded concurrency, retry/backoff and streaming events.
"""

import asyncio
import unittest

import httpx
import pytest

from workmate.config import Settings
from workmate.errors import BatchError, RateLimitError, UpstreamFetchError
from workmate.services.batch_orchestrator import (
    BatchComplete, BatchProgress, RetryPolicy, batch_process, batch_process_streaming,
    is_rate_limit_error, iter_batch_events, run_with_retry,
)


class Sleeps:
    """Records requested backoff delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class TestRetryPolicy(unittest.TestCase):

    def test_delay_doubles_up_to_ceiling(self):
        policy = RetryPolicy(retries=7, min_timeout=2, max_timeout=128)
        self.assertEqual([policy.delay(n) for n in range(1, 9)], [2, 4, 8, 16, 32, 64, 128, 128])
        self.assertEqual(policy.max_attempts, 8)

    def test_defaults(self):
        fields = Settings.model_fields
        self.assertEqual(fields["batch_concurrency"].default, 2)
        self.assertEqual(fields["batch_retries"].default, 7)
        self.assertEqual(fields["batch_min_timeout"].default, 2.0)
        self.assertEqual(fields["batch_max_timeout"].default, 128.0)
        self.assertEqual(fields["stream_retries"].default, 5)
        self.assertEqual(fields["stream_min_timeout"].default, 1.0)
        self.assertEqual(fields["stream_max_timeout"].default, 15.0)


class TestRateLimitDetection(unittest.TestCase):

    def test_detects_by_type_status_and_message(self):
        self.assertTrue(is_rate_limit_error(RateLimitError("slow down")))
        self.assertTrue(is_rate_limit_error(UpstreamFetchError("https://x.test", upstream_status=429)))
        self.assertTrue(is_rate_limit_error(Exception("HTTP 429 Too Many Requests")))
        self.assertTrue(is_rate_limit_error(Exception("RATELIMIT_EXCEEDED")))
        self.assertTrue(is_rate_limit_error(Exception("You exceeded your current quota")))
        self.assertTrue(is_rate_limit_error(Exception("Rate limit reached for model")))

    def test_detects_http_response_status(self):
        request = httpx.Request("GET", "https://x.test")
        response = httpx.Response(429, request=request)
        error = httpx.HTTPStatusError("too many", request=request, response=response)
        self.assertTrue(is_rate_limit_error(error))

    def test_other_errors(self):
        self.assertFalse(is_rate_limit_error(Exception("connection reset")))
        self.assertFalse(is_rate_limit_error(UpstreamFetchError("https://x.test", upstream_status=500)))


@pytest.mark.asyncio
async def test_run_with_retry_backs_off_then_succeeds():
    sleeps = Sleeps()
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("transient")
        return "ok"

    policy = RetryPolicy(retries=5, min_timeout=1, max_timeout=15)
    assert await run_with_retry(flaky, policy, sleep=sleeps) == "ok"
    assert sleeps.delays == [1, 2]


@pytest.mark.asyncio
async def test_run_with_retry_gives_up_with_last_error():
    sleeps = Sleeps()
    attempts = []

    async def always_fails():
        attempts.append(1)
        raise RuntimeError(f"failure {len(attempts)}")

    policy = RetryPolicy(retries=2, min_timeout=1, max_timeout=15)
    with pytest.raises(RuntimeError, match="failure 3"):
        await run_with_retry(always_fails, policy, sleep=sleeps)
    assert len(attempts) == 3
    assert sleeps.delays == [1, 2]


@pytest.mark.asyncio
async def test_batch_process_keeps_input_order():
    async def double(item, index):
        await asyncio.sleep(0.01 * (5 - item))
        return item * 2

    assert await batch_process([1, 2, 3, 4], double, concurrency=2) == [2, 4, 6, 8]


@pytest.mark.asyncio
async def test_batch_process_bounds_concurrency():
    in_flight = 0
    peak = 0

    async def work(item, index):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return item

    await batch_process(list(range(8)), work, concurrency=3)
    assert peak == 3


@pytest.mark.asyncio
async def test_batch_process_accounts_for_every_item():
    sleeps = Sleeps()
    settled = []

    async def work(item, index):
        if item == "bad":
            raise RuntimeError("always broken")
        settled.append(item)
        return item.upper()

    with pytest.raises(BatchError) as info:
        await batch_process(
            ["a", "bad", "c"], work, retries=7, min_timeout=2, max_timeout=128, sleep=sleeps,
        )

    results = info.value.results
    assert len(results) == 3
    assert results[0] == "A" and results[2] == "C"
    assert isinstance(results[1], RuntimeError)
    assert list(info.value.failures) == [1]
    assert sorted(settled) == ["a", "c"]
    # 7 retries, 2s doubling to a 128s ceiling
    assert sleeps.delays == [2, 4, 8, 16, 32, 64, 128]


@pytest.mark.asyncio
async def test_batch_process_reports_progress():
    calls = []

    async def on_progress(completed, total, item):
        calls.append((completed, total, item))

    async def work(item, index):
        return item

    await batch_process(["x", "y"], work, concurrency=1, on_progress=on_progress)
    assert calls == [(1, 2, "x"), (2, 2, "y")]


@pytest.mark.asyncio
async def test_batch_process_rejects_bad_concurrency():
    async def work(item, index):
        return item

    with pytest.raises(ValueError):
        await batch_process([1], work, concurrency=-1)


@pytest.mark.asyncio
async def test_streaming_emits_one_progress_per_item():
    events = []
    sleeps = Sleeps()

    async def work(url, index):
        if index == 2:
            raise UpstreamFetchError(url, upstream_status=500)
        return {"url": url}

    urls = [f"https://acme.test/{i}" for i in range(5)]
    results = await batch_process_streaming(
        urls, work, events.append, retries=5, min_timeout=1, max_timeout=15, sleep=sleeps,
    )

    assert [e.type for e in events].count("progress") == 5
    assert [e.type for e in events].count("complete") == 1
    assert events[0].to_dict() == {"type": "started", "total": 5}
    assert events[-1].to_dict() == {"type": "complete", "processed": 5, "errors": 1}
    failed = [e for e in events if isinstance(e, BatchProgress) and not e.ok]
    assert failed[0].index == 2
    assert failed[0].error == "Failed to fetch website: 500"
    assert results[2] is None
    assert results[4] == {"url": "https://acme.test/4"}
    assert sleeps.delays == [1, 2, 4, 8, 15]


@pytest.mark.asyncio
async def test_streaming_event_order_per_item():
    events = []

    async def work(item, index):
        return item

    await batch_process_streaming(["a", "b"], work, events.append, retries=0)
    assert [e.to_dict() for e in events] == [
        {"type": "started", "total": 2},
        {"type": "processing", "index": 0, "item": "a"},
        {"type": "progress", "index": 0, "result": "a"},
        {"type": "processing", "index": 1, "item": "b"},
        {"type": "progress", "index": 1, "result": "b"},
        {"type": "complete", "processed": 2, "errors": 0},
    ]


@pytest.mark.asyncio
async def test_streaming_uses_fallback_error_text():
    events = []

    async def work(item, index):
        raise RuntimeError()

    await batch_process_streaming(["a"], work, events.append, retries=0)
    assert events[2].error == "Processing failed"


@pytest.mark.asyncio
async def test_iter_batch_events_yields_until_complete():
    async def work(item, index):
        await asyncio.sleep(0)
        return item * 10

    events = [event async for event in iter_batch_events([1, 2, 3], work, retries=0, queue_size=1)]

    assert isinstance(events[-1], BatchComplete)
    assert events[-1].processed == 3
    assert [e.result for e in events if isinstance(e, BatchProgress)] == [10, 20, 30]


@pytest.mark.asyncio
async def test_iter_batch_events_can_stop_early():
    started = []

    async def work(item, index):
        started.append(item)
        return item

    stream = iter_batch_events(list(range(100)), work, retries=0, queue_size=1)
    async for event in stream:
        if isinstance(event, BatchProgress):
            break
    await stream.aclose()

    assert len(started) < 100
