"""Supervision of a fixed set of named containers.

Container state lives in the runtime; this module only observes and maps it.
Single-container operations go through the runtime API (DockerRuntime), and
pull-and-recreate updates go through the compose tool (ComposeRunner).

Batch policies differ by operation kind and must stay that way:
- reads (get_all_status) are best-effort and skip failing names;
- writes (*_all_containers) are fail-fast and stop at the first failure;
- updates never raise for tool failures and return an UpdateOutcome.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from pathlib import Path

from deploykeeper.core.batch import for_each_collect_successes, for_each_stop_on_first_error
from deploykeeper.core.compose import ComposeRunner
from deploykeeper.core.errors import DeployKeeperError, InvalidConfigError
from deploykeeper.core.models import ContainerInfo, UpdateOutcome
from deploykeeper.core.runtime import DockerRuntime

logger = logging.getLogger(__name__)

# Seconds the runtime waits after SIGTERM before it sends SIGKILL
GRACEFUL_STOP_TIMEOUT = 10


def _join_transcripts(*parts: str) -> str:
    return "\n".join(parts)


class ContainerSupervisor:
    """Lifecycle operations over the configured container names."""

    def __init__(
        self,
        compose_file: Path | str,
        container_names: Sequence[str],
        runtime: DockerRuntime | None = None,
        compose: ComposeRunner | None = None,
        stop_timeout: int = GRACEFUL_STOP_TIMEOUT,
    ) -> None:
        self.compose_file = Path(compose_file)
        self.container_names = list(container_names)
        self.runtime = runtime or DockerRuntime()
        self.compose = compose or ComposeRunner(self.compose_file)
        self.stop_timeout = stop_timeout

    # --- validation ---

    def validate(self) -> None:
        """Check the compose file and report configured containers the runtime
        does not know yet.

        Missing containers only produce warnings: they may simply not have been
        created by a first ``compose up``.

        Raises:
            InvalidConfigError: The compose file does not exist.
            RuntimeCommunicationError: Containers could not be listed.
        """
        logger.info("Validating Docker configuration")

        if not self.compose_file.exists():
            raise InvalidConfigError(f"Docker compose file not found: {self.compose_file}")

        known = self.runtime.list_names()
        logger.debug(f"Found {len(known)} total containers")

        missing = [name for name in self.container_names if name not in known]
        if missing:
            logger.warning(f"Some configured containers not found in Docker: {missing}")
            logger.warning(
                "These containers may not be created yet. "
                "They will be available after first compose up."
            )

        logger.info("Docker validation completed successfully")

    # --- status ---

    def get_status(self, name: str) -> ContainerInfo:
        """Inspect one container. Raises RuntimeCommunicationError on failure."""
        logger.debug(f"Getting status for container: {name}")
        info = self.runtime.inspect(name)
        logger.debug(f"Container {name} status: {info.status}")
        return info

    def get_all_status(self) -> list[ContainerInfo]:
        """Best-effort status of every configured container.

        Names whose inspection fails are logged and left out; the call itself
        does not fail.
        """
        logger.debug("Getting status for all managed containers")
        return for_each_collect_successes(self.container_names, self.get_status, "get status")

    # --- single-container operations ---

    def start(self, name: str) -> None:
        logger.info(f"Starting container: {name}")
        self.runtime.start(name)
        logger.info(f"Successfully started container: {name}")

    def stop(self, name: str) -> None:
        logger.info(f"Stopping container: {name}")
        self.runtime.stop(name, timeout=self.stop_timeout)
        logger.info(f"Successfully stopped container: {name}")

    def restart(self, name: str) -> None:
        logger.info(f"Restarting container: {name}")
        self.runtime.restart(name, timeout=self.stop_timeout)
        logger.info(f"Successfully restarted container: {name}")

    # --- fail-fast batches ---

    def start_all_containers(self) -> None:
        logger.info("Starting all managed containers")
        for_each_stop_on_first_error(self.container_names, self.start, "start")
        logger.info("Successfully started all containers")

    def stop_all_containers(self) -> None:
        logger.info("Stopping all managed containers")
        for_each_stop_on_first_error(self.container_names, self.stop, "stop")
        logger.info("Successfully stopped all containers")

    def restart_all_containers(self) -> None:
        logger.info("Restarting all managed containers")
        for_each_stop_on_first_error(self.container_names, self.restart, "restart")
        logger.info("Successfully restarted all containers")

    # --- updates (soft failures) ---

    def update(self, name: str, cancel: threading.Event | None = None) -> UpdateOutcome:
        """Pull the latest image for one service and recreate it.

        A failure to stop the container first is tolerated: pull and up can
        still succeed against a running container.
        """
        logger.info(f"Pulling and restarting container: {name}")

        try:
            self.stop(name)
        except DeployKeeperError as e:
            logger.warning(f"Failed to stop container before pull: {e}")

        pull = self.compose.pull(name, cancel=cancel)
        if not pull.ok:
            logger.error(f"Docker compose pull failed for '{name}': {pull.stderr}")
            return UpdateOutcome.failed(pull.stdout, pull)

        up = self.compose.up(name, cancel=cancel)
        output = _join_transcripts(pull.stdout, up.stdout)
        if not up.ok:
            logger.error(f"Docker compose up failed for '{name}': {up.stderr}")
            return UpdateOutcome.failed(output, up)

        logger.info(f"Successfully pulled and restarted container: {name}")
        return UpdateOutcome(success=True, output=output)

    def update_all(self, cancel: threading.Event | None = None) -> UpdateOutcome:
        """Run ``down``, ``pull`` and ``up -d`` for the whole stack.

        Stops at the first failing step. ``output`` holds the stdout of every
        step attempted so far, so callers can see how far the rollout got.
        """
        logger.info("Pulling and restarting all containers")

        steps = (
            ("down", self.compose.down),
            ("pull", self.compose.pull),
            ("up", self.compose.up),
        )
        transcripts: list[str] = []
        for step, run_step in steps:
            result = run_step(cancel=cancel)
            transcripts.append(result.stdout)
            if not result.ok:
                logger.error(f"Docker compose {step} failed: {result.stderr}")
                return UpdateOutcome.failed(_join_transcripts(*transcripts), result)
            logger.debug(f"Docker compose {step} completed")

        logger.info("Successfully pulled and restarted all containers")
        return UpdateOutcome(success=True, output=_join_transcripts(*transcripts))
