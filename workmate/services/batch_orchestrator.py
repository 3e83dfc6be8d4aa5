"""
Batch Orchestrator - bounded, retrying execution of independent AI-backed work.

Two modes:

* ``batch_process``: up to ``concurrency`` items in flight, each retried with
  exponential backoff. Waits for every item to settle and returns results in
  input order; if any item exhausted its retries a ``BatchError`` carrying
  every slot is raised.
* ``batch_process_streaming``: one item at a time with a shorter retry
  budget, reporting ``started`` / ``processing`` / ``progress`` / ``complete``
  events. A failed item leaves ``None`` in its slot and never stops the run.
  ``iter_batch_events`` exposes the same run as an async iterator of typed
  events read from a bounded queue.

Rate-limit errors are recognised for logging, but they are retried with the
same policy as any other failure.

Usage:
    results = await batch_process(urls, crawl_one, concurrency=2)

    async for event in iter_batch_events(urls, crawl_one):
        yield f"data: {json.dumps(event.to_dict())}\\n\\n"
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import (
    Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar, Union
)

from workmate.config import settings
from workmate.errors import BatchError, RateLimitError
from workmate.structured_logging import Subsystem, get_subsystem_logger

log = get_subsystem_logger(Subsystem.BATCH)

T = TypeVar("T")
R = TypeVar("R")

Processor = Callable[[T, int], Awaitable[R]]
Sleep = Callable[[float], Awaitable[Any]]

_RATE_LIMIT_MARKERS = ("429", "RATELIMIT_EXCEEDED")
_RATE_LIMIT_PHRASES = ("quota", "rate limit")


def is_rate_limit_error(error: BaseException) -> bool:
    """True for provider rate-limit / quota failures, by type, status or message."""
    if isinstance(error, RateLimitError):
        return True
    for attr in ("status_code", "status", "upstream_status"):
        if getattr(error, attr, None) == 429:
            return True
    response = getattr(error, "response", None)
    if response is not None and getattr(response, "status_code", None) == 429:
        return True

    message = str(error)
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return True
    lowered = message.lower()
    return any(phrase in lowered for phrase in _RATE_LIMIT_PHRASES)


# ──────────────────────────────────────────────────────────────
# Retry
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff. ``retries`` counts attempts after the first one."""
    retries: int
    min_timeout: float
    max_timeout: float
    factor: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def delay(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        return min(self.min_timeout * (self.factor ** (retry_number - 1)), self.max_timeout)


async def run_with_retry(
    operation: Callable[[], Awaitable[R]],
    policy: RetryPolicy,
    label: str = "",
    sleep: Sleep = asyncio.sleep,
) -> R:
    """Run ``operation`` until it succeeds or the policy is exhausted, then re-raise."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt > policy.retries:
                log.error("Giving up after retries", {
                    "item": label,
                    "attempts": attempt,
                    "error": str(e),
                })
                raise

            wait_time = policy.delay(attempt)
            if is_rate_limit_error(e):
                log.warning("Rate limited, backing off", {
                    "item": label, "attempt": attempt, "wait_seconds": wait_time, "error": str(e),
                })
            else:
                log.warning("Attempt failed, retrying", {
                    "item": label, "attempt": attempt, "wait_seconds": wait_time, "error": str(e),
                })
            await sleep(wait_time)


# ──────────────────────────────────────────────────────────────
# Bounded-concurrency mode
# ──────────────────────────────────────────────────────────────

async def batch_process(
    items: Sequence[T],
    processor: Processor,
    concurrency: Optional[int] = None,
    retries: Optional[int] = None,
    min_timeout: Optional[float] = None,
    max_timeout: Optional[float] = None,
    on_progress: Optional[Callable[[int, int, T], Any]] = None,
    sleep: Sleep = asyncio.sleep,
) -> List[R]:
    """
    Process ``items`` with at most ``concurrency`` in flight.

    Args:
        items: Independent work items
        processor: ``async (item, index) -> result``
        concurrency: Max simultaneous items (default 2)
        retries: Retries per item after the first attempt (default 7)
        min_timeout / max_timeout: Backoff bounds in seconds (default 2s / 128s)
        on_progress: Called as ``(completed, total, item)`` after each success

    Returns:
        Results aligned with ``items``

    Raises:
        BatchError: once every item has settled, if any item exhausted its retries
    """
    concurrency = concurrency or settings.batch_concurrency
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")
    policy = RetryPolicy(
        retries=settings.batch_retries if retries is None else retries,
        min_timeout=settings.batch_min_timeout if min_timeout is None else min_timeout,
        max_timeout=settings.batch_max_timeout if max_timeout is None else max_timeout,
    )

    total = len(items)
    semaphore = asyncio.Semaphore(concurrency)
    completed = 0

    log.info("Batch started", {"total": total, "concurrency": concurrency, "retries": policy.retries})

    async def run_one(index: int, item: T) -> R:
        nonlocal completed
        async with semaphore:
            result = await run_with_retry(
                lambda: processor(item, index),
                policy,
                label=f"#{index}",
                sleep=sleep,
            )
        completed += 1
        if on_progress is not None:
            outcome = on_progress(completed, total, item)
            if inspect.isawaitable(outcome):
                await outcome
        return result

    settled = await asyncio.gather(
        *(run_one(index, item) for index, item in enumerate(items)),
        return_exceptions=True,
    )

    failures: Dict[int, BaseException] = {
        index: outcome for index, outcome in enumerate(settled)
        if isinstance(outcome, BaseException)
    }
    if failures:
        log.error("Batch finished with failures", {"total": total, "failed": sorted(failures)})
        raise BatchError(list(settled), failures)

    log.info("Batch complete", {"total": total})
    return list(settled)


# ──────────────────────────────────────────────────────────────
# Sequential streaming mode
# ──────────────────────────────────────────────────────────────

@dataclass
class BatchStarted:
    total: int
    type: str = field(default="started", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "total": self.total}


@dataclass
class BatchProcessing:
    index: int
    item: Any
    type: str = field(default="processing", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "index": self.index, "item": self.item}


@dataclass
class BatchProgress:
    index: int
    result: Any = None
    error: Optional[str] = None
    type: str = field(default="progress", init=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "index": self.index}
        if self.error is not None:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return data


@dataclass
class BatchComplete:
    processed: int
    errors: int
    type: str = field(default="complete", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "processed": self.processed, "errors": self.errors}


BatchEvent = Union[BatchStarted, BatchProcessing, BatchProgress, BatchComplete]


async def batch_process_streaming(
    items: Sequence[T],
    processor: Processor,
    send_event: Callable[[BatchEvent], Any],
    retries: Optional[int] = None,
    min_timeout: Optional[float] = None,
    max_timeout: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> List[Optional[R]]:
    """
    Process ``items`` one at a time, reporting each step through ``send_event``.

    ``send_event`` may be a plain function or a coroutine function. Failed
    items leave ``None`` in their result slot and are counted in the final
    ``complete`` event.
    """
    policy = RetryPolicy(
        retries=settings.stream_retries if retries is None else retries,
        min_timeout=settings.stream_min_timeout if min_timeout is None else min_timeout,
        max_timeout=settings.stream_max_timeout if max_timeout is None else max_timeout,
    )

    async def emit(event: BatchEvent) -> None:
        outcome = send_event(event)
        if inspect.isawaitable(outcome):
            await outcome

    await emit(BatchStarted(total=len(items)))

    results: List[Optional[R]] = []
    errors = 0

    for index, item in enumerate(items):
        await emit(BatchProcessing(index=index, item=item))
        try:
            result = await run_with_retry(
                lambda: processor(item, index),
                policy,
                label=f"#{index}",
                sleep=sleep,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            errors += 1
            results.append(None)
            await emit(BatchProgress(index=index, error=str(e) or "Processing failed"))
            continue

        results.append(result)
        await emit(BatchProgress(index=index, result=result))

    await emit(BatchComplete(processed=len(items), errors=errors))
    log.info("Streaming batch complete", {"processed": len(items), "errors": errors})
    return results


_DONE = object()


async def iter_batch_events(
    items: Sequence[T],
    processor: Processor,
    retries: Optional[int] = None,
    min_timeout: Optional[float] = None,
    max_timeout: Optional[float] = None,
    queue_size: int = 16,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[BatchEvent]:
    """
    Run ``batch_process_streaming`` in a background task and yield its events.

    The queue is bounded, so a slow consumer applies back-pressure to the run.
    Closing the iterator early cancels the run.
    """
    queue: "asyncio.Queue[Any]" = asyncio.Queue(maxsize=queue_size)

    async def produce() -> None:
        try:
            await batch_process_streaming(
                items,
                processor,
                queue.put,
                retries=retries,
                min_timeout=min_timeout,
                max_timeout=max_timeout,
                sleep=sleep,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            await queue.put(_DONE)
            raise
        await queue.put(_DONE)

    task = asyncio.create_task(produce())
    try:
        while True:
            event = await queue.get()
            if event is _DONE:
                break
            yield event
        # Surface unexpected failures of the run itself
        await task
    finally:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
