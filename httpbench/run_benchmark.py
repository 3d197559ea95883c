#!/usr/bin/env python3
"""Benchmark an HTTP client against a single target URI, ab-style.

Example:
    httpbench -n 10000 -c 16 -k http://127.0.0.1:8888/rnd?c=1024
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from httpbench.analysis.report import save_summary
from httpbench.runner.benchmark import execute
from httpbench.runner.client import AGENTS, AgentError, create_agent
from httpbench.runner.config import (
    BenchmarkConfig,
    Builder,
    ConfigError,
    check_body_file,
    load_profile,
)
from httpbench.runner.run_manifest import generate_manifest

logger = logging.getLogger(__name__)

# Request timeout for CLI runs unless a profile sets one.
RUNNER_TIMEOUT_MS = 15000


def positive_int(label: str):
    def _parse(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid {label}: {value}") from None
        if number < 1:
            raise argparse.ArgumentTypeError(f"Invalid {label}: {value}")
        return number

    return _parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="httpbench",
        usage="%(prog)s [options] <target-URI>",
        description="Benchmark an HTTP client against a single target URI",
    )
    parser.add_argument("uri", nargs="?", metavar="target-URI", help="Target URI")
    parser.add_argument(
        "-n",
        dest="requests",
        type=positive_int("number of requests"),
        metavar="requests",
        help="Number of requests to perform for the benchmarking session "
        "(default: 1, which usually gives non-representative results)",
    )
    parser.add_argument(
        "-c",
        dest="concurrency",
        type=positive_int("number for concurrency"),
        metavar="concurrency",
        help="Number of requests to keep in flight at once (default: 1)",
    )
    parser.add_argument(
        "-k",
        dest="keep_alive",
        action="store_true",
        default=None,
        help="Enable HTTP keep-alive (default: every request sends Connection: close)",
    )
    parser.add_argument(
        "-p",
        dest="file",
        type=Path,
        metavar="file",
        help="Execute PUT requests with the content of this file",
    )
    parser.add_argument(
        "-t",
        dest="content_type",
        metavar="content-type",
        help="Content type of the PUT request body",
    )
    parser.add_argument(
        "-a",
        "--agent",
        choices=sorted(AGENTS),
        default="httpx",
        help="HTTP client agent to benchmark (default: httpx)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        metavar="profile",
        help="YAML benchmark profile; flags override its values",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        metavar="dir",
        help="Write summary.json and run_manifest.json to this directory",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def parse_config(args: argparse.Namespace) -> BenchmarkConfig:
    """Merge profile and flags into a validated config."""
    builder = Builder().set_timeout(RUNNER_TIMEOUT_MS)
    if args.config is not None:
        if not args.config.is_file():
            raise ConfigError(f"Profile '{args.config}' does not exist")
        builder = load_profile(args.config, builder)

    if args.uri is not None:
        builder.set_uri(args.uri)
    if args.requests is not None:
        builder.set_requests(args.requests)
    if args.concurrency is not None:
        builder.set_concurrency(args.concurrency)
    if args.keep_alive:
        builder.set_keep_alive(True)
    if args.file is not None:
        builder.set_file(args.file)
        if args.content_type is not None:
            builder.set_content_type(args.content_type)

    config = builder.build()
    check_body_file(config)
    return config


def setup_logging(verbose: bool) -> None:
    if not logging.root.handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = parse_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(file=sys.stderr)
        parser.print_help(sys.stderr)
        return 2

    logger.debug("Benchmark config: %s", config)

    try:
        agent = create_agent(args.agent)
        result = execute(agent, config)
    except AgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output is not None:
        save_summary(
            args.output,
            result.to_dict(),
            generate_manifest(agent.client_name()),
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
