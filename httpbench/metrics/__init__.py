"""Request accounting for benchmark runs."""

from httpbench.metrics.stats import Stats

__all__ = ["Stats"]
