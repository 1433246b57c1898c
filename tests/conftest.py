# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the deploykeeper test suite.

This module provides:
- Fast process configurations (short grace/settle timings)
- Test doubles for the container runtime and the compose tool
- A fake ``docker compose`` executable for end-to-end update tests

Usage:
    Fixtures are discovered automatically by pytest.
"""

from __future__ import annotations

import stat
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from deploykeeper.core.containers import ContainerSupervisor
from deploykeeper.core.errors import RuntimeCommunicationError
from deploykeeper.core.models import CommandResult, ContainerInfo, ContainerStatus
from deploykeeper.core.process import ProcessConfig, ProcessSupervisor

PYTHON = sys.executable


# =============================================================================
# Process Fixtures
# =============================================================================


@pytest.fixture
def make_process_config(tmp_path: Path) -> Callable[..., ProcessConfig]:
    """Factory for ProcessConfig running in tmp_path.

    Keeps the default startup grace (0.5s) but shortens the settle delays so
    tests that only need a restart do not pay for them.
    """

    def _make(command: list[str], **overrides) -> ProcessConfig:
        params = {
            "working_dir": tmp_path,
            "command": command,
            "name": "testapp",
            "restart_settle": 0.1,
        }
        params.update(overrides)
        return ProcessConfig(**params)

    return _make


@pytest.fixture
def supervisor_factory(
    make_process_config: Callable[..., ProcessConfig],
) -> Generator[Callable[..., ProcessSupervisor], None, None]:
    """Create ProcessSupervisors that are always closed after the test."""
    created: list[ProcessSupervisor] = []

    def _make(command: list[str], **overrides) -> ProcessSupervisor:
        supervisor = ProcessSupervisor(make_process_config(command, **overrides))
        created.append(supervisor)
        return supervisor

    yield _make

    for supervisor in created:
        supervisor.close()


@pytest.fixture
def sleeper_command() -> list[str]:
    """A long-running child that exits promptly on SIGTERM."""
    return [PYTHON, "-c", "import time; time.sleep(30)"]


@pytest.fixture
def term_ignoring_command() -> list[str]:
    """A child that ignores SIGTERM and must be killed."""
    return [
        PYTHON,
        "-c",
        "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); time.sleep(60)",
    ]


# =============================================================================
# Container Test Doubles
# =============================================================================


class FakeRuntime:
    """In-memory stand-in for DockerRuntime that records every call."""

    def __init__(
        self,
        containers: dict[str, tuple[str, str]] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        # name -> (runtime state string, image)
        self.containers = containers if containers is not None else {}
        self.failing = failing or set()
        self.calls: list[tuple[str, str]] = []

    def _check(self, action: str, name: str) -> None:
        self.calls.append((action, name))
        if name in self.failing or name not in self.containers:
            raise RuntimeCommunicationError(f"Failed to {action} container '{name}': No such container")

    def inspect(self, name: str) -> ContainerInfo:
        self._check("inspect", name)
        state, image = self.containers[name]
        return ContainerInfo(
            name=f"/{name}",
            status=ContainerStatus.from_runtime_state(state),
            image=image,
        )

    def start(self, name: str) -> None:
        self._check("start", name)

    def stop(self, name: str, timeout: int = 10) -> None:
        self._check("stop", name)

    def restart(self, name: str, timeout: int = 10) -> None:
        self._check("restart", name)

    def list_names(self) -> set[str]:
        self.calls.append(("list", ""))
        return set(self.containers)

    def invoked(self, action: str) -> list[str]:
        return [name for called, name in self.calls if called == action]


class FakeCompose:
    """Stand-in for ComposeRunner returning scripted results per verb."""

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, str | None]] = []

    def _result(self, verb: str, service: str | None) -> CommandResult:
        self.calls.append((verb, service))
        return self.results.get(verb, CommandResult(returncode=0, stdout=f"{verb} ok"))

    def pull(self, service=None, cancel=None) -> CommandResult:
        return self._result("pull", service)

    def up(self, service=None, cancel=None) -> CommandResult:
        return self._result("up", service)

    def down(self, cancel=None) -> CommandResult:
        return self._result("down", None)

    def count(self, verb: str) -> int:
        return sum(1 for called, _ in self.calls if called == verb)


@pytest.fixture
def compose_file(tmp_path: Path) -> Path:
    """A minimal compose descriptor on disk."""
    path = tmp_path / "docker-compose.yml"
    path.write_text("services:\n  web:\n    image: nginx:latest\n  worker:\n    image: busybox\n")
    return path


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime(
        containers={
            "web": ("running", "nginx:latest"),
            "worker": ("exited", "busybox"),
            "cache": ("paused", "redis:7"),
        }
    )


@pytest.fixture
def fake_compose() -> FakeCompose:
    return FakeCompose()


@pytest.fixture
def container_supervisor(
    compose_file: Path,
    fake_runtime: FakeRuntime,
    fake_compose: FakeCompose,
) -> ContainerSupervisor:
    return ContainerSupervisor(
        compose_file=compose_file,
        container_names=["web", "worker", "cache"],
        runtime=fake_runtime,
        compose=fake_compose,
    )


# =============================================================================
# Fake compose executable
# =============================================================================


FAKE_COMPOSE_SCRIPT = """#!/bin/sh
# Fake compose: args are "-f <file> <verb> [service]"
shift 2
verb="$1"
echo "$verb" >> calls.log
if [ -n "$FAIL_VERB" ] && [ "$verb" = "$FAIL_VERB" ]; then
    echo "$verb stdout"
    echo "$verb failed" >&2
    exit 1
fi
if [ "$verb" = "hang" ]; then
    sleep 30
fi
echo "$verb stdout"
exit 0
"""


@pytest.fixture
def fake_compose_bin(tmp_path: Path) -> Path:
    """Executable that mimics ``docker compose`` and logs verbs to calls.log
    in its working directory (the compose file directory)."""
    script = tmp_path / "fake-compose"
    script.write_text(FAKE_COMPOSE_SCRIPT)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "docker: marks tests requiring Docker")
