"""Invocation of the ``docker compose`` batch tool.

Every call is bounded by a timeout and can be aborted through a
``threading.Event``. Tool failures of any kind (non-zero exit, timeout,
cancellation, missing binary) come back as a CommandResult; nothing here raises
for them.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from collections.abc import Sequence
from pathlib import Path

import psutil

from deploykeeper.core.models import CommandResult

logger = logging.getLogger(__name__)

# Exit status reported when the tool itself cannot be executed (shell convention)
TOOL_NOT_FOUND = 127


def _kill_tree(pid: int) -> None:
    """Kill a process and its descendants. ``docker compose`` runs as a CLI
    plugin child process, so killing only the top-level pid leaves it holding
    the output pipes."""
    try:
        parent = psutil.Process(pid)
        procs = [*parent.children(recursive=True), parent]
    except psutil.NoSuchProcess:
        return
    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue


class ComposeRunner:
    """Run compose verbs against one descriptor file.

    Commands run with the working directory set to the directory that
    contains the descriptor, so relative paths inside it resolve as they
    would from a shell in that directory.
    """

    def __init__(
        self,
        compose_file: Path | str,
        base_command: Sequence[str] = ("docker", "compose"),
        timeout: float = 600.0,
        cancel_poll_interval: float = 0.2,
    ) -> None:
        self.compose_file = Path(compose_file).absolute()
        self.compose_dir = self.compose_file.parent
        self.base_command = list(base_command)
        self.timeout = timeout
        self.cancel_poll_interval = cancel_poll_interval

    def run(
        self,
        verb: Sequence[str],
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``<base> -f <compose_file> <verb...>`` and capture its output.

        Args:
            verb: Compose arguments, e.g. ``["pull", "web"]``.
            cancel: Optional token; when set, the tool is killed and a result
                flagged ``cancelled`` is returned.
            timeout: Override for the default time budget in seconds.

        Returns:
            CommandResult with returncode, stdout and stderr as text.
        """
        cmd = [*self.base_command, "-f", str(self.compose_file), *verb]
        effective_timeout = timeout if timeout is not None else self.timeout
        label = " ".join(verb)
        if cancel is not None and cancel.is_set():
            logger.warning(f"Compose {label} cancelled before start")
            return CommandResult(returncode=-1, stderr=f"Command '{label}' was cancelled", cancelled=True)

        logger.debug(f"Running: {' '.join(cmd)} (cwd={self.compose_dir})")

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(self.compose_dir),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            logger.error(f"Failed to execute compose {label}: {e}")
            return CommandResult(
                returncode=TOOL_NOT_FOUND,
                stderr=f"Failed to execute {' '.join(cmd)}: {e}",
            )

        deadline = time.monotonic() + effective_timeout
        while True:
            remaining = deadline - time.monotonic()
            wait = min(remaining, self.cancel_poll_interval) if cancel is not None else remaining
            try:
                stdout, stderr = proc.communicate(timeout=max(wait, 0.0))
                return CommandResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)
            except subprocess.TimeoutExpired:
                pass

            if cancel is not None and cancel.is_set():
                logger.warning(f"Compose {label} cancelled")
                return self._abort(proc, f"Command '{label}' was cancelled", cancelled=True)
            if time.monotonic() >= deadline:
                logger.error(f"Compose {label} timed out after {effective_timeout}s")
                return self._abort(
                    proc, f"Command '{label}' timed out after {effective_timeout}s", timed_out=True
                )

    def _abort(
        self,
        proc: subprocess.Popen,
        message: str,
        timed_out: bool = False,
        cancelled: bool = False,
    ) -> CommandResult:
        _kill_tree(proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            stdout, stderr = "", ""
        stderr = f"{stderr}\n{message}" if stderr else message
        return CommandResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout or "",
            stderr=stderr,
            timed_out=timed_out,
            cancelled=cancelled,
        )

    def pull(self, service: str | None = None, cancel: threading.Event | None = None) -> CommandResult:
        return self.run(["pull", *([service] if service else [])], cancel=cancel)

    def up(self, service: str | None = None, cancel: threading.Event | None = None) -> CommandResult:
        """``up -d``: recreate changed services detached, without building images."""
        return self.run(["up", "-d", *([service] if service else [])], cancel=cancel)

    def down(self, cancel: threading.Event | None = None) -> CommandResult:
        return self.run(["down"], cancel=cancel)
