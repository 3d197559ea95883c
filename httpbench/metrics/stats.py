"""Completion aggregator shared by every dispatch discipline."""

import asyncio
import threading
from typing import Callable


class Stats:
    """Thread-safe request counters with a seal-once completion latch.

    The first ``expected_count`` recordings define the result. Once
    ``success_count + failure_count`` reaches ``expected_count`` the stats
    are sealed: waiters are released and later recordings are dropped.
    """

    def __init__(self, expected_count: int, concurrency: int):
        self.expected_count = expected_count
        self.concurrency = concurrency

        self._success_count = 0
        self._failure_count = 0
        self._content_len = 0
        self._total_content_len = 0
        self._sealed = expected_count <= 0

        self._lock = threading.Lock()
        self._condition = threading.Condition(self._lock)
        self._listeners: list[Callable[[], None]] = []

    def record_success(self, content_len: int) -> None:
        """Record a completed request that returned 200."""
        self._record(content_len, success=True)

    def record_failure(self, content_len: int) -> None:
        """Record a failed request with whatever bytes were consumed."""
        self._record(content_len, success=False)

    def _record(self, content_len: int, success: bool) -> None:
        with self._condition:
            if self._sealed:
                return
            if success:
                self._success_count += 1
            else:
                self._failure_count += 1
            self._content_len = content_len
            self._total_content_len += content_len

            if self._success_count + self._failure_count < self.expected_count:
                return

            self._sealed = True
            self._condition.notify_all()
            listeners, self._listeners = self._listeners, []

        # Listeners run outside the lock; they may call back into stats.
        for listener in listeners:
            listener()

    def is_complete(self) -> bool:
        with self._lock:
            return self._sealed

    def wait_for_completion(self, timeout: float | None = None) -> bool:
        """Block until sealed.

        Returns False only when ``timeout`` elapses first.
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._sealed, timeout)

    async def wait_for_completion_async(self) -> None:
        """Suspend the current task until sealed.

        Cancelling the awaiting task raises ``asyncio.CancelledError`` in
        the caller and detaches the waiter from the stats.
        """
        loop = asyncio.get_running_loop()
        sealed: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not sealed.done():
                sealed.set_result(None)

        def _on_seal() -> None:
            loop.call_soon_threadsafe(_resolve)

        self.add_completion_listener(_on_seal)
        try:
            await sealed
        finally:
            self.remove_completion_listener(_on_seal)

    def add_completion_listener(self, listener: Callable[[], None]) -> None:
        """Call ``listener`` once the stats are sealed.

        If already sealed the listener runs immediately on the calling thread.
        """
        with self._lock:
            if not self._sealed:
                self._listeners.append(listener)
                return
        listener()

    def remove_completion_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def content_len(self) -> int:
        """Body length of the most recent recording ("Document Length")."""
        with self._lock:
            return self._content_len

    @property
    def total_content_len(self) -> int:
        with self._lock:
            return self._total_content_len

    def to_dict(self) -> dict:
        """Snapshot for serialization."""
        with self._lock:
            return {
                "expected_count": self.expected_count,
                "concurrency": self.concurrency,
                "success_count": self._success_count,
                "failure_count": self._failure_count,
                "content_len": self._content_len,
                "total_content_len": self._total_content_len,
                "complete": self._sealed,
            }

    def __repr__(self) -> str:
        return (
            f"Stats(success={self.success_count}, failure={self.failure_count}, "
            f"expected={self.expected_count})"
        )
