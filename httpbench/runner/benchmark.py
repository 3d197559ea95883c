"""Benchmark pipeline: warmup, cooldown, measured run, report."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from httpbench.analysis.report import print_report, requests_per_sec
from httpbench.metrics.stats import Stats
from httpbench.runner.client import Agent, AgentError
from httpbench.runner.config import BenchmarkConfig

logger = logging.getLogger(__name__)

COOLDOWN_SEC = 5.0
MAX_WARMUP_REQUESTS = 100
WARMUP_CONCURRENCY = 2


@dataclass
class BenchmarkResult:
    """Outcome of a measured run."""

    config: BenchmarkConfig
    stats: Stats
    start_time: float
    end_time: float

    @property
    def duration_sec(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        return {
            "config": self.config.to_dict(),
            "duration_sec": self.duration_sec,
            "successful_requests": self.stats.success_count,
            "failed_requests": self.stats.failure_count,
            "document_length": self.stats.content_len,
            "content_transferred": self.stats.total_content_len,
            "requests_per_sec": requests_per_sec(self.stats, self.duration_sec),
        }


def warmup_requests(requests: int) -> int:
    """One percent of the measured requests, capped at 100."""
    return min(requests // 100, MAX_WARMUP_REQUESTS)


def execute(
    agent: Agent, config: BenchmarkConfig, cooldown_sec: Optional[float] = None
) -> BenchmarkResult:
    """Run warmup and measured passes of ``config`` on ``agent`` and print the report.

    The agent is shut down on every exit path once ``init()`` succeeded.
    """
    try:
        agent.init()
    except Exception as e:
        raise AgentError(f"Failed to initialize {type(agent).__name__}: {e}") from e

    try:
        print("=================================")
        print(f"HTTP agent: {agent.client_name()}")
        print("=================================")
        print("warming up...")

        warmup = warmup_requests(config.requests)
        if warmup > 0:
            warmup_config = (
                BenchmarkConfig.copy(config)
                .set_requests(warmup)
                .set_concurrency(WARMUP_CONCURRENCY)
                .build()
            )
            logger.info("Running %d warmup requests", warmup)
            agent.execute(warmup_config)
        else:
            logger.info("Skipping warmup for %d requests", config.requests)

        time.sleep(COOLDOWN_SEC if cooldown_sec is None else cooldown_sec)

        print("---------------------------------")
        print(f"{config.requests} {config.method} requests")
        print("---------------------------------")

        start_time = time.monotonic()
        stats = agent.execute(config)
        end_time = time.monotonic()

        result = BenchmarkResult(
            config=config, stats=stats, start_time=start_time, end_time=end_time
        )
        print_report(config.uri, result.duration_sec, stats)
        return result
    finally:
        agent.shutdown()
