"""Shared test fixtures — a scratch repository root, scripts, and a fake clock."""

from __future__ import annotations

from pathlib import Path

import pytest

from colony.events.bus import EventBus
from colony.policy.audit import AuditTrail
from colony.sandbox.runner import SandboxConfig, ScriptRunner
from colony.signals.trails import PheromoneTrails


class FakeClock:
    """Manually advanced time source for decay tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_script(root: Path, rel: str, body: str, mode: int = 0o755) -> Path:
    """Write a bash script under ``root`` and return its path."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/usr/bin/env bash\n" + body + "\n")
    path.chmod(mode)
    return path


@pytest.fixture
def repo_root(tmp_path):
    for d in ("evolution", "dev-tools", "memory", "optimization"):
        (tmp_path / d).mkdir()
    return tmp_path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def trails(repo_root, clock):
    return PheromoneTrails(repo_root, clock=clock)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def audit(event_bus):
    trail = AuditTrail()
    trail.attach(event_bus)
    return trail


@pytest.fixture
def runner(repo_root, event_bus, audit):
    return ScriptRunner(
        SandboxConfig(root=repo_root, max_output_bytes=10_000),
        event_bus=event_bus,
    )


@pytest.fixture
def echo_args_script(repo_root):
    """A script that prints each argument on its own line."""
    return write_script(repo_root, "evolution/echo-args.sh", 'for a in "$@"; do echo "$a"; done')
