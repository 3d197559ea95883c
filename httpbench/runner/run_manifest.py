"""Generate run manifest with environment metadata.

Captures:
- timestamp
- git_sha
- agent (client name and version)
- python_version, platform
- httpx_version, aiohttp_version
"""
import platform
import subprocess
from datetime import datetime, timezone
from importlib import metadata
from typing import Any


def get_git_sha() -> str:
    """Get current git commit SHA."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    return result.stdout.strip() if result.returncode == 0 else "unknown"


def get_library_versions() -> dict[str, str]:
    """Versions of the HTTP libraries the agents are built on."""
    versions = {}
    for dist in ("httpx", "aiohttp"):
        try:
            versions[f"{dist}_version"] = metadata.version(dist)
        except metadata.PackageNotFoundError:
            versions[f"{dist}_version"] = "unknown"
    return versions


def generate_manifest(agent_name: str = "unknown") -> dict[str, Any]:
    """Generate complete run manifest."""
    manifest = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "git_sha": get_git_sha(),
        "agent": agent_name,
        "python_version": platform.python_version(),
        "platform": platform.platform(),
    }
    manifest.update(get_library_versions())
    return manifest
