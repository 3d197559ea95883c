"""Dispatch disciplines that drive a benchmark workload to completion.

Two interchangeable drivers share one contract: they return only once the
``Stats`` passed in are sealed.

* ``run_pull`` - a fixed pool of worker threads, each issuing synchronous
  requests back to back until the stats are complete.
* ``run_push`` - a single dispatch loop gated by an ``asyncio.Semaphore``;
  every request runs as a task whose done-callback records the outcome and
  returns the permit.

Single-request callables report ``(status, bytes_read)`` and raise
``TransferError`` on I/O failures.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Callable

from httpbench.metrics.stats import Stats

logger = logging.getLogger(__name__)

HTTP_OK = 200

Perform = Callable[[], tuple[int, int]]
Submit = Callable[[], Awaitable[tuple[int, int]]]


class TransferError(Exception):
    """A single request failed after consuming ``bytes_read`` body bytes."""

    def __init__(self, message: str, bytes_read: int = 0):
        super().__init__(message)
        self.bytes_read = bytes_read


def record_outcome(stats: Stats, status: int, content_len: int) -> None:
    """Fold one response into the stats; anything but 200 is a failure."""
    if status == HTTP_OK:
        stats.record_success(content_len)
    else:
        stats.record_failure(content_len)


def record_error(stats: Stats, error: BaseException) -> None:
    if isinstance(error, TransferError):
        logger.debug("Request failed after %d bytes: %s", error.bytes_read, error)
        stats.record_failure(error.bytes_read)
    else:
        logger.warning("Unexpected error while executing request", exc_info=error)
        stats.record_failure(0)


def run_pull(stats: Stats, concurrency: int, perform: Perform) -> Stats:
    """Run ``concurrency`` workers calling ``perform`` until stats are sealed.

    Workers check for completion before every request, so at most
    ``concurrency - 1`` requests overshoot the expected count; the stats
    drop those recordings.
    """
    with ThreadPoolExecutor(
        max_workers=concurrency, thread_name_prefix="bench-worker"
    ) as executor:
        workers = [
            executor.submit(_pull_worker, stats, perform) for _ in range(concurrency)
        ]
    for worker in workers:
        worker.result()
    return stats


def _pull_worker(stats: Stats, perform: Perform) -> None:
    while not stats.is_complete():
        try:
            status, content_len = perform()
        except Exception as e:
            record_error(stats, e)
        else:
            record_outcome(stats, status, content_len)


async def run_push(
    stats: Stats, requests: int, concurrency: int, submit: Submit
) -> Stats:
    """Dispatch exactly ``requests`` calls of ``submit``, ``concurrency`` at a time.

    If the driver itself is cancelled, outstanding requests are cancelled
    and awaited before the cancellation propagates.
    """
    loop = asyncio.get_running_loop()
    semaphore = asyncio.Semaphore(concurrency)
    in_flight: set[asyncio.Task] = set()

    def _on_done(task: asyncio.Task) -> None:
        in_flight.discard(task)
        try:
            if task.cancelled():
                logger.debug("Request cancelled")
                stats.record_failure(0)
            elif task.exception() is not None:
                record_error(stats, task.exception())
            else:
                status, content_len = task.result()
                record_outcome(stats, status, content_len)
        finally:
            semaphore.release()

    try:
        for _ in range(requests):
            await semaphore.acquire()
            task = loop.create_task(submit())
            in_flight.add(task)
            task.add_done_callback(_on_done)

        await stats.wait_for_completion_async()
    finally:
        if in_flight:
            pending = list(in_flight)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    return stats
