"""Tests for the benchmark runner pipeline and CLI."""

import asyncio
import json
from pathlib import Path

import pytest

from httpbench import run_benchmark
from httpbench.runner import benchmark
from httpbench.runner.benchmark import COOLDOWN_SEC, execute, warmup_requests
from httpbench.runner.client import (
    AgentError,
    AiohttpAgent,
    HttpxAgent,
    HttpxAsyncAgent,
    MockAgent,
    create_agent,
)
from httpbench.runner.config import BenchmarkConfig


class RecordingAgent(MockAgent):
    """Mock agent remembering every config it executed and its lifecycle."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.executed: list[BenchmarkConfig] = []
        self.shutdowns = 0

    def execute(self, config):
        self.executed.append(config)
        return super().execute(config)

    def shutdown(self) -> None:
        self.shutdowns += 1
        super().shutdown()


class BrokenInitAgent(RecordingAgent):
    def init(self) -> None:
        raise OSError("no sockets left")


@pytest.fixture(autouse=True)
def no_cooldown(monkeypatch):
    monkeypatch.setattr(benchmark, "COOLDOWN_SEC", 0.0)


def make_config(requests: int, concurrency: int = 4) -> BenchmarkConfig:
    return (
        BenchmarkConfig.builder()
        .set_uri("http://127.0.0.1:8888/rnd?c=1024")
        .set_requests(requests)
        .set_concurrency(concurrency)
        .build()
    )


class TestWarmup:
    """Tests for warmup sizing."""

    @pytest.mark.parametrize(
        "requests,expected",
        [(1, 0), (99, 0), (100, 1), (5000, 50), (10000, 100), (1_000_000, 100)],
    )
    def test_warmup_requests(self, requests: int, expected: int) -> None:
        """Test warmup is 1% of requests capped at 100."""
        assert warmup_requests(requests) == expected


class TestExecute:
    """Tests for the runner pipeline."""

    def test_warmup_then_measured(self, capsys) -> None:
        """Test warmup runs at concurrency 2 before the measured run."""
        agent = RecordingAgent()
        result = execute(agent, make_config(requests=500, concurrency=8))

        warmup, measured = agent.executed
        assert warmup.requests == 5
        assert warmup.concurrency == 2
        assert measured.requests == 500
        assert measured.concurrency == 8

        assert result.stats.success_count == 500
        assert result.duration_sec > 0
        assert agent.shutdowns == 1

        out = capsys.readouterr().out
        assert "HTTP agent: mock (complete)" in out
        assert "500 GET requests" in out
        assert "Complete requests:\t500" in out
        assert "Failed requests:\t0" in out

    def test_small_run_skips_warmup(self, capsys) -> None:
        """Test requests=1 concurrency=1 completes without a warmup pass."""
        agent = RecordingAgent()
        result = execute(agent, make_config(requests=1, concurrency=1))

        assert len(agent.executed) == 1
        assert result.stats.success_count == 1
        assert "Document Length:\t1024 bytes" in capsys.readouterr().out

    def test_shutdown_on_failure(self) -> None:
        """Test the agent is shut down when a run raises."""

        class ExplodingAgent(RecordingAgent):
            def execute(self, config):
                raise RuntimeError("boom")

        agent = ExplodingAgent()
        with pytest.raises(RuntimeError):
            execute(agent, make_config(requests=10))
        assert agent.shutdowns == 1

    def test_init_failure(self) -> None:
        """Test init failures surface as AgentError without shutdown."""
        agent = BrokenInitAgent()
        with pytest.raises(AgentError, match="no sockets left"):
            execute(agent, make_config(requests=10))
        assert agent.shutdowns == 0
        assert agent.executed == []

    def test_result_to_dict(self) -> None:
        """Test the result summary carries counts and rate."""
        result = execute(RecordingAgent(content_len=10), make_config(requests=20))
        summary = result.to_dict()
        assert summary["successful_requests"] == 20
        assert summary["failed_requests"] == 0
        assert summary["content_transferred"] == 200
        assert summary["config"]["requests"] == 20
        assert summary["requests_per_sec"] > 0


class SequencedAgent(RecordingAgent):
    """Recording agent logging each run into a shared event list."""

    def __init__(self, events: list, **kwargs):
        super().__init__(**kwargs)
        self.events = events

    def execute(self, config):
        self.events.append(("execute", config.requests))
        return super().execute(config)


class TestCooldown:
    """Tests for the pause between warmup and the measured run."""

    @pytest.fixture
    def events(self, monkeypatch) -> list:
        events = []
        monkeypatch.setattr(benchmark, "COOLDOWN_SEC", COOLDOWN_SEC)
        monkeypatch.setattr(benchmark.time, "sleep", lambda sec: events.append(("sleep", sec)))
        return events

    def test_default_cooldown(self) -> None:
        """Test the runner cools down for five seconds."""
        assert COOLDOWN_SEC == 5.0

    def test_cooldown_after_warmup(self, events: list) -> None:
        """Test the cooldown sleep sits between warmup and the measured run."""
        execute(SequencedAgent(events), make_config(requests=500))
        assert events == [("execute", 5), ("sleep", 5.0), ("execute", 500)]

    def test_cooldown_without_warmup(self, events: list) -> None:
        """Test the cooldown still precedes the measured run when warmup is skipped."""
        execute(SequencedAgent(events), make_config(requests=1, concurrency=1))
        assert events == [("sleep", 5.0), ("execute", 1)]

    def test_cooldown_override(self, events: list) -> None:
        """Test an explicit cooldown replaces the default."""
        execute(SequencedAgent(events), make_config(requests=1, concurrency=1), cooldown_sec=0.5)
        assert events == [("sleep", 0.5), ("execute", 1)]


class TestCreateAgent:
    """Tests for the agent registry."""

    def test_known_agents(self) -> None:
        """Test every registered agent reports a name."""
        for name in ("httpx", "httpx-async", "aiohttp", "mock"):
            assert create_agent(name).client_name()

    def test_unknown_agent(self) -> None:
        """Test unknown agent names are rejected."""
        with pytest.raises(AgentError):
            create_agent("curl")


class TestAgentInit:
    """Tests for agents used without init()."""

    @pytest.mark.parametrize("name", ["httpx", "httpx-async", "aiohttp", "mock"])
    def test_execute_before_init(self, name: str) -> None:
        """Test execute refuses to run before init."""
        with pytest.raises(AgentError, match="before init"):
            create_agent(name).execute(make_config(requests=1))

    def test_httpx_send_before_init(self) -> None:
        """Test a direct send before init raises AgentError."""
        with pytest.raises(AgentError, match="before init"):
            HttpxAgent().send(make_config(requests=1), {}, None)

    @pytest.mark.parametrize("agent_cls", [HttpxAsyncAgent, AiohttpAgent])
    def test_async_send_before_init(self, agent_cls) -> None:
        """Test a direct async send before init raises AgentError."""
        with pytest.raises(AgentError, match="before init"):
            asyncio.run(agent_cls().send(make_config(requests=1), {}, None))


class TestCli:
    """Tests for the command line surface."""

    def test_parse_flags(self, tmp_path: Path) -> None:
        """Test flags map onto the config with the runner timeout."""
        body = tmp_path / "body.bin"
        body.write_bytes(b"\0" * 2048)
        parser = run_benchmark.build_parser()
        args = parser.parse_args(
            ["-n", "50", "-c", "5", "-k", "-p", str(body), "-t", "application/octet-stream",
             "http://127.0.0.1:8888/echo"]
        )
        config = run_benchmark.parse_config(args)

        assert config.requests == 50
        assert config.concurrency == 5
        assert config.keep_alive is True
        assert config.file == body
        assert config.content_type == "application/octet-stream"
        assert config.timeout == 15000
        assert config.method == "PUT"

    def test_content_type_needs_file(self) -> None:
        """Test -t is ignored without -p."""
        parser = run_benchmark.build_parser()
        args = parser.parse_args(["-t", "text/plain", "http://127.0.0.1:8888/"])
        config = run_benchmark.parse_config(args)
        assert config.content_type is None
        assert config.method == "GET"

    def test_profile_with_flag_override(self, tmp_path: Path) -> None:
        """Test flags override profile values."""
        profile = tmp_path / "profile.yaml"
        profile.write_text("uri: http://127.0.0.1:8888/rnd?c=10\nrequests: 100\nconcurrency: 4\n")
        parser = run_benchmark.build_parser()
        args = parser.parse_args(["--config", str(profile), "-c", "2"])
        config = run_benchmark.parse_config(args)

        assert config.uri == "http://127.0.0.1:8888/rnd?c=10"
        assert config.requests == 100
        assert config.concurrency == 2

    def test_missing_uri(self, capsys) -> None:
        """Test a missing target URI prints usage and exits non-zero."""
        assert run_benchmark.main([]) == 2
        err = capsys.readouterr().err
        assert "Target-URI not specified" in err
        assert "usage:" in err

    def test_missing_body_file(self, tmp_path: Path, capsys) -> None:
        """Test a missing PUT body file is a usage error."""
        code = run_benchmark.main(["-p", str(tmp_path / "nope.bin"), "http://127.0.0.1:8888/echo"])
        assert code == 2
        assert "does not exist" in capsys.readouterr().err

    @pytest.mark.parametrize("flags", [["-n", "abc"], ["-c", "0"], ["-n", "-5"]])
    def test_bad_numbers(self, flags: list[str]) -> None:
        """Test invalid numbers are rejected by the parser."""
        with pytest.raises(SystemExit) as exc_info:
            run_benchmark.main(flags + ["http://127.0.0.1:8888/"])
        assert exc_info.value.code == 2

    def test_mock_run_with_output(self, tmp_path: Path, capsys) -> None:
        """Test a full CLI run writes the report and summary files."""
        output_dir = tmp_path / "results"
        code = run_benchmark.main(
            ["-a", "mock", "-n", "30", "-c", "3", "-o", str(output_dir),
             "http://127.0.0.1:8888/rnd?c=1024"]
        )
        assert code == 0
        assert "Complete requests:\t30" in capsys.readouterr().out

        with open(output_dir / "summary.json") as f:
            summary = json.load(f)
        assert summary["successful_requests"] == 30
        with open(output_dir / "run_manifest.json") as f:
            manifest = json.load(f)
        assert manifest["agent"] == "mock (complete)"
        assert "python_version" in manifest
