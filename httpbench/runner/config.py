"""Benchmark parameters.

``BenchmarkConfig`` is immutable; build one with ``BenchmarkConfig.builder()``
or derive a variant from an existing config with ``BenchmarkConfig.copy()``.
"""

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml

DEFAULT_REQUESTS = 1
DEFAULT_CONCURRENCY = 1
DEFAULT_TIMEOUT_MS = 60000


class ConfigError(ValueError):
    """Invalid benchmark configuration."""


@dataclass(frozen=True)
class BenchmarkConfig:
    """Immutable benchmark parameters."""

    uri: str
    requests: int = DEFAULT_REQUESTS
    concurrency: int = DEFAULT_CONCURRENCY
    keep_alive: bool = False
    file: Optional[Path] = None
    content_type: Optional[str] = None
    timeout: int = DEFAULT_TIMEOUT_MS  # milliseconds

    @staticmethod
    def builder() -> "Builder":
        return Builder()

    @staticmethod
    def copy(config: "BenchmarkConfig") -> "Builder":
        """Return a builder seeded with every field of ``config``."""
        return (
            Builder()
            .set_uri(config.uri)
            .set_requests(config.requests)
            .set_concurrency(config.concurrency)
            .set_keep_alive(config.keep_alive)
            .set_file(config.file)
            .set_content_type(config.content_type)
            .set_timeout(config.timeout)
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "BenchmarkConfig":
        """Load a benchmark profile from YAML."""
        return load_profile(path).build()

    @property
    def method(self) -> str:
        return "GET" if self.file is None else "PUT"

    @property
    def timeout_sec(self) -> float:
        return self.timeout / 1000

    def request_headers(self) -> dict[str, str]:
        """Headers every request of this run carries."""
        headers = {}
        if not self.keep_alive:
            headers["Connection"] = "close"
        if self.file is not None and self.content_type:
            headers["Content-Type"] = self.content_type
        return headers

    def read_body(self) -> Optional[bytes]:
        """Request body for PUT runs, ``None`` for GET runs."""
        if self.file is None:
            return None
        return self.file.read_bytes()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["file"] = str(self.file) if self.file is not None else None
        return data


class Builder:
    """Mutable builder for ``BenchmarkConfig``."""

    def __init__(self):
        self.uri: Optional[str] = None
        self.requests = DEFAULT_REQUESTS
        self.concurrency = DEFAULT_CONCURRENCY
        self.keep_alive = False
        self.file: Optional[Path] = None
        self.content_type: Optional[str] = None
        self.timeout = DEFAULT_TIMEOUT_MS

    def set_uri(self, uri: str) -> "Builder":
        self.uri = uri
        return self

    def set_requests(self, requests: int) -> "Builder":
        self.requests = requests
        return self

    def set_concurrency(self, concurrency: int) -> "Builder":
        self.concurrency = concurrency
        return self

    def set_keep_alive(self, keep_alive: bool) -> "Builder":
        self.keep_alive = keep_alive
        return self

    def set_file(self, file: Optional[os.PathLike | str]) -> "Builder":
        self.file = Path(file) if file is not None else None
        return self

    def set_content_type(self, content_type: Optional[str]) -> "Builder":
        self.content_type = content_type
        return self

    def set_timeout(self, timeout: int) -> "Builder":
        self.timeout = timeout
        return self

    def build(self) -> BenchmarkConfig:
        if not self.uri:
            raise ConfigError("Target-URI not specified")
        if not isinstance(self.uri, str):
            raise ConfigError(f"Invalid target-URI: {self.uri!r}")
        parts = urlsplit(self.uri)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigError(f"Invalid target-URI: {self.uri}")
        if not _is_positive_int(self.requests):
            raise ConfigError(f"Invalid number of requests: {self.requests}")
        if not _is_positive_int(self.concurrency):
            raise ConfigError(f"Invalid number for concurrency: {self.concurrency}")
        if not _is_positive_int(self.timeout):
            raise ConfigError(f"Invalid timeout: {self.timeout}")

        return BenchmarkConfig(
            uri=self.uri,
            requests=self.requests,
            concurrency=self.concurrency,
            keep_alive=self.keep_alive,
            file=self.file,
            content_type=self.content_type,
            timeout=self.timeout,
        )


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


PROFILE_FIELDS = {
    "uri": Builder.set_uri,
    "requests": Builder.set_requests,
    "concurrency": Builder.set_concurrency,
    "keep_alive": Builder.set_keep_alive,
    "file": Builder.set_file,
    "content_type": Builder.set_content_type,
    "timeout": Builder.set_timeout,
}


def load_profile(path: Path, builder: Optional[Builder] = None) -> Builder:
    """Read a YAML benchmark profile into a builder.

    Profile values are applied on top of ``builder`` (a fresh one by
    default). The builder is returned unbuilt so command line flags can
    still override profile values.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Benchmark profile must be a mapping: {path}")

    unknown = sorted(set(data) - set(PROFILE_FIELDS))
    if unknown:
        raise ConfigError(f"Unknown profile keys in {path}: {', '.join(unknown)}")

    if builder is None:
        builder = Builder()
    for key, value in data.items():
        PROFILE_FIELDS[key](builder, value)
    return builder


def check_body_file(config: BenchmarkConfig) -> None:
    """Make sure the PUT body file, if any, exists and is readable."""
    file = config.file
    if file is None:
        return
    if not file.is_file():
        raise ConfigError(f"File '{file}' does not exist")
    if not os.access(file, os.R_OK):
        raise ConfigError(f"File '{file}' cannot be read")
