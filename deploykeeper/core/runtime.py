"""Container runtime control through the Docker CLI.

Covers the per-container operations (inspect, start, stop, restart, list).
Pull-and-recreate workflows go through ``docker compose`` instead; see
``deploykeeper.core.compose``.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess

from deploykeeper.core.errors import RuntimeCommunicationError
from deploykeeper.core.models import ContainerInfo, ContainerStatus, normalize_container_name

logger = logging.getLogger(__name__)


class DockerRuntime:
    """Thin wrapper over ``docker`` commands.

    Every failure (missing binary, daemon unreachable, unknown container,
    timeout) is raised as RuntimeCommunicationError.
    """

    def __init__(self, docker_binary: str = "docker", command_timeout: float = 30.0) -> None:
        self.docker_binary = docker_binary
        self.command_timeout = command_timeout

    def _run(self, args: list[str], action: str, timeout: float | None = None) -> str:
        cmd = [self.docker_binary, *args]
        effective_timeout = timeout if timeout is not None else self.command_timeout
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=effective_timeout,
            )
        except FileNotFoundError as e:
            raise RuntimeCommunicationError(
                f"Failed to {action}: docker binary '{self.docker_binary}' not found"
            ) from e
        except OSError as e:
            raise RuntimeCommunicationError(
                f"Failed to {action}: cannot execute '{self.docker_binary}': {e}"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeCommunicationError(
                f"Failed to {action}: timed out after {effective_timeout}s"
            ) from e

        if result.returncode != 0:
            raise RuntimeCommunicationError(f"Failed to {action}: {result.stderr.strip()}")
        return result.stdout

    def ping(self) -> None:
        """Check that the docker binary exists and the daemon answers."""
        if not shutil.which(self.docker_binary):
            raise RuntimeCommunicationError(f"Docker binary '{self.docker_binary}' not found in PATH")
        self._run(["version"], "connect to Docker daemon")

    def inspect(self, name: str) -> ContainerInfo:
        """Inspect one container and map its state."""
        stdout = self._run(
            ["inspect", "--type", "container", name],
            f"inspect container '{name}'",
        )
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise RuntimeCommunicationError(
                f"Failed to inspect container '{name}': invalid JSON from docker: {e}"
            ) from e

        if not payload or not isinstance(payload, list) or not isinstance(payload[0], dict):
            raise RuntimeCommunicationError(f"Failed to inspect container '{name}': empty response")

        details = payload[0]
        state = details.get("State")
        if not state:
            raise RuntimeCommunicationError(f"Container '{name}' has no state")

        config = details.get("Config") or {}
        return ContainerInfo(
            name=details.get("Name") or "",
            status=ContainerStatus.from_runtime_state(state.get("Status")),
            image=config.get("Image") or details.get("Image") or "",
        )

    def start(self, name: str) -> None:
        self._run(["start", name], f"start container '{name}'")

    def stop(self, name: str, timeout: int = 10) -> None:
        """Stop a container; the runtime sends SIGKILL after ``timeout`` seconds."""
        self._run(
            ["stop", "-t", str(timeout), name],
            f"stop container '{name}'",
            timeout=self.command_timeout + timeout,
        )

    def restart(self, name: str, timeout: int = 10) -> None:
        self._run(
            ["restart", "-t", str(timeout), name],
            f"restart container '{name}'",
            timeout=self.command_timeout + timeout,
        )

    def list_names(self) -> set[str]:
        """Names of all containers known to the runtime, running or not."""
        stdout = self._run(["ps", "-a", "--format", "{{.Names}}"], "list containers")
        names: set[str] = set()
        for line in stdout.splitlines():
            # Linked containers are reported comma-joined on one line
            for name in line.split(","):
                name = normalize_container_name(name.strip())
                if name:
                    names.add(name)
        return names
