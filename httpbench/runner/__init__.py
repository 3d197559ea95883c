"""Benchmark runner components."""

from httpbench.runner.benchmark import BenchmarkResult, execute
from httpbench.runner.client import AGENTS, Agent, AgentError, create_agent
from httpbench.runner.config import BenchmarkConfig, ConfigError

__all__ = [
    "AGENTS",
    "Agent",
    "AgentError",
    "BenchmarkConfig",
    "BenchmarkResult",
    "ConfigError",
    "create_agent",
    "execute",
]
