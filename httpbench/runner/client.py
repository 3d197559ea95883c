"""HTTP client agents bound into the benchmark harness."""

import asyncio
import itertools
import logging
import random
from abc import ABC, abstractmethod
from typing import Iterable, Optional

import aiohttp
import httpx

from httpbench.metrics.stats import Stats
from httpbench.runner.config import BenchmarkConfig
from httpbench.runner.loadgen import TransferError, run_pull, run_push

logger = logging.getLogger(__name__)

# Pool ceiling; the drivers bound actual concurrency.
MAX_CONNECTIONS = 2000


class AgentError(Exception):
    """An agent could not acquire its client resources."""


def _not_initialized(agent: "Agent") -> AgentError:
    return AgentError(f"{type(agent).__name__} used before init()")


class Agent(ABC):
    """Abstract base class for benchmarkable HTTP clients."""

    def init(self) -> None:
        """Prepare client resources."""

    @abstractmethod
    def execute(self, config: BenchmarkConfig) -> Stats:
        """Run the configured workload; return once the stats are sealed."""
        pass

    def shutdown(self) -> None:
        """Release client resources."""

    @abstractmethod
    def client_name(self) -> str:
        """Human-readable client identifier, with version when known."""
        pass


class PullAgent(Agent):
    """Agent over a synchronous client, driven by a worker pool."""

    def execute(self, config: BenchmarkConfig) -> Stats:
        stats = Stats(config.requests, config.concurrency)
        headers = config.request_headers()
        body = config.read_body()
        return run_pull(
            stats, config.concurrency, lambda: self.send(config, headers, body)
        )

    @abstractmethod
    def send(
        self, config: BenchmarkConfig, headers: dict[str, str], body: Optional[bytes]
    ) -> tuple[int, int]:
        """Execute one request, consume the body, return (status, bytes read)."""
        pass


class PushAgent(Agent):
    """Agent over an asynchronous client, driven by a semaphore-gated loop.

    Each agent owns a private event loop so the connection pool survives
    between the warmup and measured runs.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def init(self) -> None:
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(self.open())
        except BaseException:
            loop.close()
            raise
        self._loop = loop

    def execute(self, config: BenchmarkConfig) -> Stats:
        if self._loop is None:
            raise _not_initialized(self)
        stats = Stats(config.requests, config.concurrency)
        headers = config.request_headers()
        body = config.read_body()
        return self._loop.run_until_complete(
            run_push(
                stats,
                config.requests,
                config.concurrency,
                lambda: self.send(config, headers, body),
            )
        )

    def shutdown(self) -> None:
        if self._loop is None:
            return
        try:
            self._loop.run_until_complete(self.close())
        finally:
            self._loop.close()
            self._loop = None

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def send(
        self, config: BenchmarkConfig, headers: dict[str, str], body: Optional[bytes]
    ) -> tuple[int, int]:
        """Execute one request, consume the body, return (status, bytes read)."""
        pass


class HttpxAgent(PullAgent):
    """httpx.Client shared by a pool of worker threads."""

    def __init__(self):
        self._client: Optional[httpx.Client] = None

    def init(self) -> None:
        self._client = httpx.Client(
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_CONNECTIONS,
            ),
        )

    def execute(self, config: BenchmarkConfig) -> Stats:
        if self._client is None:
            raise _not_initialized(self)
        return super().execute(config)

    def shutdown(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def send(
        self, config: BenchmarkConfig, headers: dict[str, str], body: Optional[bytes]
    ) -> tuple[int, int]:
        client = self._client
        if client is None:
            raise _not_initialized(self)
        content_len = 0
        try:
            with client.stream(
                config.method,
                config.uri,
                headers=headers,
                content=body,
                timeout=httpx.Timeout(config.timeout_sec),
            ) as response:
                for chunk in response.iter_raw():
                    content_len += len(chunk)
                return response.status_code, content_len
        except httpx.HTTPError as e:
            raise TransferError(f"{type(e).__name__}: {e}", content_len) from e

    def client_name(self) -> str:
        return f"httpx (ver: {httpx.__version__})"


class HttpxAsyncAgent(PushAgent):
    """httpx.AsyncClient with callback-recorded completions."""

    def __init__(self):
        super().__init__()
        self._client: Optional[httpx.AsyncClient] = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_CONNECTIONS,
            ),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(
        self, config: BenchmarkConfig, headers: dict[str, str], body: Optional[bytes]
    ) -> tuple[int, int]:
        client = self._client
        if client is None:
            raise _not_initialized(self)
        content_len = 0
        try:
            async with client.stream(
                config.method,
                config.uri,
                headers=headers,
                content=body,
                timeout=httpx.Timeout(config.timeout_sec),
            ) as response:
                async for chunk in response.aiter_raw():
                    content_len += len(chunk)
                return response.status_code, content_len
        except httpx.HTTPError as e:
            raise TransferError(f"{type(e).__name__}: {e}", content_len) from e

    def client_name(self) -> str:
        return f"httpx async (ver: {httpx.__version__})"


class AiohttpAgent(PushAgent):
    """aiohttp.ClientSession with callback-recorded completions."""

    def __init__(self):
        super().__init__()
        self._session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=MAX_CONNECTIONS, limit_per_host=0),
            auto_decompress=False,
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send(
        self, config: BenchmarkConfig, headers: dict[str, str], body: Optional[bytes]
    ) -> tuple[int, int]:
        session = self._session
        if session is None:
            raise _not_initialized(self)
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=config.timeout_sec,
            sock_read=config.timeout_sec,
        )
        content_len = 0
        try:
            async with session.request(
                config.method,
                config.uri,
                headers=headers,
                data=body,
                timeout=timeout,
                # Content-Type goes out only when configured.
                skip_auto_headers=() if config.content_type else ("Content-Type",),
            ) as response:
                async for chunk in response.content.iter_any():
                    content_len += len(chunk)
                return response.status, content_len
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransferError(f"{type(e).__name__}: {e}", content_len) from e

    def client_name(self) -> str:
        return f"aiohttp (ver: {aiohttp.__version__})"


class MockAgent(PushAgent):
    """Synthetic client for dry runs and for exercising every terminal path.

    ``outcomes`` is cycled per request:

    * ``complete`` - 200 with ``content_len`` bytes
    * ``status`` - 500 with ``content_len`` bytes
    * ``fail`` - I/O failure after half the body
    * ``cancel`` - the request is cancelled
    * ``error`` - an unexpected exception escapes the client
    """

    OUTCOMES = ("complete", "status", "fail", "cancel", "error")

    def __init__(
        self,
        outcomes: Iterable[str] = ("complete",),
        content_len: int = 1024,
        base_delay_ms: float = 1.0,
        jitter_pct: float = 0.1,
        seed: int = 42,
    ):
        super().__init__()
        outcomes = tuple(outcomes)
        unknown = set(outcomes) - set(self.OUTCOMES)
        if not outcomes or unknown:
            raise ValueError(f"Unknown mock outcomes: {sorted(unknown) or outcomes}")
        self.outcomes = outcomes
        self.content_len = content_len
        self.base_delay_ms = base_delay_ms
        self.jitter_pct = jitter_pct
        self._rng = random.Random(seed)
        self._script = itertools.cycle(self.outcomes)

        # Instrumentation
        self.sent = 0
        self.in_flight = 0
        self.peak_in_flight = 0

    def _delay_sec(self) -> float:
        jitter = self._rng.uniform(-self.jitter_pct, self.jitter_pct)
        return self.base_delay_ms * (1 + jitter) / 1000

    async def send(
        self, config: BenchmarkConfig, headers: dict[str, str], body: Optional[bytes]
    ) -> tuple[int, int]:
        outcome = next(self._script)
        self.sent += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delay_sec())
            if outcome == "complete":
                return 200, self.content_len
            if outcome == "status":
                return 500, self.content_len
            if outcome == "fail":
                raise TransferError("synthetic I/O failure", self.content_len // 2)
            if outcome == "cancel":
                raise asyncio.CancelledError()
            raise RuntimeError("synthetic client error")
        finally:
            self.in_flight -= 1

    def client_name(self) -> str:
        return f"mock ({', '.join(self.outcomes)})"


AGENTS: dict[str, type[Agent]] = {
    "httpx": HttpxAgent,
    "httpx-async": HttpxAsyncAgent,
    "aiohttp": AiohttpAgent,
    "mock": MockAgent,
}


def create_agent(name: str) -> Agent:
    """Instantiate a registered agent by name."""
    try:
        return AGENTS[name]()
    except KeyError:
        raise AgentError(
            f"Unknown agent: {name}. Use one of: {', '.join(sorted(AGENTS))}"
        ) from None
