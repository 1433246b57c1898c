"""Supervision of a single externally spawned OS process.

Lifecycle: NotStarted -> Running -> (Stopping) -> Stopped. No crashed state is
stored; liveness is re-derived from the tracked process on every probe.

Termination is escalated by the supervisor itself: SIGTERM, poll for up to
``stop_timeout`` seconds, then SIGKILL. Compare with the container supervisor,
where the runtime performs the escalation.

The supervisor holds no lock. Callers must serialize lifecycle calls for one
instance (e.g. a single-writer queue); probes may be called freely.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import psutil

from deploykeeper.core.errors import (
    AlreadyRunningError,
    InvalidConfigError,
    ProcessStartError,
)

logger = logging.getLogger(__name__)


@dataclass
class ProcessConfig:
    """Launch configuration and timing for a supervised process."""

    working_dir: Path | str
    command: list[str]

    # Logger suffix for child output (proc.<name>)
    name: str = "app"

    # Timings (seconds)
    startup_grace: float = 0.5  # re-probe after spawn to catch import-time crashes
    stop_timeout: float = 10.0  # SIGTERM -> SIGKILL ceiling
    poll_interval: float = 0.1
    kill_settle: float = 0.5
    restart_settle: float = 0.5

    # Tail of child output kept in memory for diagnostics
    output_buffer_lines: int = 500


class _OutputCollector:
    """Drain a child's stdout/stderr on daemon threads.

    Lines are forwarded to the ``proc.<name>`` logger and kept in bounded
    buffers, so a crashed launch can report what it printed and a chatty child
    can never block on a full pipe.
    """

    def __init__(self, process: subprocess.Popen, name: str, max_lines: int) -> None:
        self.stdout: deque[str] = deque(maxlen=max_lines)
        self.stderr: deque[str] = deque(maxlen=max_lines)
        self._proc_logger = logging.getLogger(f"proc.{name}")
        self._threads: list[threading.Thread] = []

        if process.stdout:
            self._spawn(process.stdout, self.stdout, logging.INFO, f"{name}-stdout")
        if process.stderr:
            self._spawn(process.stderr, self.stderr, logging.ERROR, f"{name}-stderr")

    def _spawn(self, pipe: IO[bytes], buffer: deque[str], level: int, thread_name: str) -> None:
        thread = threading.Thread(
            target=self._read_pipe,
            args=(pipe, buffer, level),
            name=thread_name,
            daemon=True,
        )
        thread.start()
        self._threads.append(thread)

    def _read_pipe(self, pipe: IO[bytes], buffer: deque[str], level: int) -> None:
        try:
            for line_bytes in iter(pipe.readline, b""):
                line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
                buffer.append(line)
                self._proc_logger.log(level, line)
        except (OSError, ValueError) as e:
            self._proc_logger.debug(f"Pipe reader exited: {e}")
        finally:
            pipe.close()

    def join(self, timeout: float) -> None:
        """Wait for readers to hit EOF, at most ``timeout`` seconds in total."""
        deadline = time.monotonic() + timeout
        for thread in self._threads:
            thread.join(max(0.0, deadline - time.monotonic()))

    def stdout_text(self) -> str:
        return "\n".join(self.stdout)

    def stderr_text(self) -> str:
        return "\n".join(self.stderr)


@dataclass
class _ProcessHandle:
    """Live handle to a spawned process. Only ProcessSupervisor.start() makes one."""

    popen: subprocess.Popen
    # None if the process vanished before it could be tracked
    tracked: psutil.Process | None
    output: _OutputCollector
    started_at: float = field(default_factory=time.time)

    @property
    def pid(self) -> int:
        return self.popen.pid


def _track(pid: int) -> psutil.Process | None:
    """Capture a psutil handle right after spawn.

    psutil remembers the creation time, so later probes detect PID reuse
    instead of reporting an unrelated process as ours.
    """
    try:
        return psutil.Process(pid)
    except psutil.Error:
        return None


def _probe(handle: _ProcessHandle) -> bool:
    """Non-blocking, non-mutating liveness check. Zombies count as dead."""
    if handle.tracked is None:
        return False
    try:
        return handle.tracked.is_running() and handle.tracked.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but cannot be inspected further
        return True


def _popen_kwargs() -> dict[str, Any]:
    """Platform-specific Popen flags. A new session keeps terminal signals
    (Ctrl-C) away from the child; the supervisor decides when it stops."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class ProcessSupervisor:
    """Own at most one externally spawned process.

    Usage:
        with ProcessSupervisor(ProcessConfig("/srv/app", ["python", "-m", "app"])) as sup:
            sup.start()
            ...

    ``close()`` (or leaving the ``with`` block) stops a live process. It must be
    called explicitly; a supervisor garbage-collected with a live process only
    logs a warning.
    """

    def __init__(self, config: ProcessConfig) -> None:
        self.config = config
        self._handle: _ProcessHandle | None = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def pid(self) -> int | None:
        """PID of the live process, or None when nothing is running."""
        if self._handle is not None and _probe(self._handle):
            return self._handle.pid
        return None

    def start(self) -> None:
        """Spawn the configured command.

        Raises:
            AlreadyRunningError: A live process is already tracked. The existing
                handle is left untouched.
            InvalidConfigError: The command is empty.
            ProcessStartError: Spawning failed, or the process exited within the
                startup grace period. The message embeds captured stdout/stderr.
        """
        if self._handle is not None and _probe(self._handle):
            raise AlreadyRunningError(
                f"Process '{self.name}' is already running (PID {self._handle.pid})"
            )

        command = list(self.config.command)
        if not command:
            raise InvalidConfigError("Start command is empty")

        if self._handle is not None:
            # Previous run exited on its own; reap it before replacing.
            self._release(self._handle)

        logger.info(f"Starting '{self.name}' with command: {command}")
        try:
            popen = subprocess.Popen(
                command,
                cwd=str(Path(self.config.working_dir)),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_popen_kwargs(),
            )
        except OSError as e:
            raise ProcessStartError(f"Failed to start '{self.name}': {e}") from e

        handle = _ProcessHandle(
            popen=popen,
            tracked=_track(popen.pid),
            output=_OutputCollector(popen, self.name, self.config.output_buffer_lines),
        )
        self._handle = handle
        logger.info(f"'{self.name}' started with PID {popen.pid}")

        # Many workloads die at import time; catch that here rather than
        # leaving the caller to notice later.
        time.sleep(self.config.startup_grace)
        if not _probe(handle):
            returncode = self._consume(handle)
            stdout = handle.output.stdout_text()
            stderr = handle.output.stderr_text()
            raise ProcessStartError(
                f"Process '{self.name}' crashed immediately after start "
                f"(exit status {returncode}). stdout: {stdout}, stderr: {stderr}",
                stdout=stdout,
                stderr=stderr,
            )

    def stop(self) -> None:
        """Terminate the process: SIGTERM, wait, then SIGKILL.

        Idempotent and never raises. Signal failures are logged and the
        sequence continues; the handle is always released at the end. Blocks
        for up to ``stop_timeout + kill_settle`` seconds.
        """
        handle = self._handle
        if handle is None or not _probe(handle):
            if handle is not None:
                self._release(handle)
            logger.info(f"'{self.name}' is not running, nothing to stop")
            return

        pid = handle.pid
        logger.info(f"Stopping '{self.name}' (PID {pid})")

        try:
            handle.tracked.terminate()
            logger.info(f"Sent SIGTERM to process {pid}, waiting for graceful shutdown...")
        except psutil.Error as e:
            logger.warning(f"Failed to send SIGTERM to process {pid}: {e}")

        deadline = time.monotonic() + self.config.stop_timeout
        while time.monotonic() < deadline:
            returncode = handle.popen.poll()
            if returncode is not None:
                logger.info(f"'{self.name}' stopped gracefully with status {returncode}")
                self._release(handle)
                return
            time.sleep(self.config.poll_interval)

        logger.warning(f"Process {pid} did not stop gracefully, sending SIGKILL")
        try:
            handle.tracked.kill()
        except psutil.Error as e:
            logger.error(f"Failed to send SIGKILL to process {pid}: {e}")

        time.sleep(self.config.kill_settle)

        returncode = handle.popen.poll()
        if returncode is None:
            logger.warning(f"Process {pid} may still be running after SIGKILL")
        else:
            logger.info(f"'{self.name}' force stopped with status {returncode}")

        self._release(handle)

    def restart(self) -> None:
        """Stop if running, settle, then start. Errors from start() propagate."""
        logger.info(f"Restarting '{self.name}'")
        if self.is_running():
            self.stop()
        time.sleep(self.config.restart_settle)
        self.start()

    def is_running(self) -> bool:
        """Liveness probe. Does not reap and does not change supervisor state."""
        return self._handle is not None and _probe(self._handle)

    def health_check(self) -> bool:
        """Report whether the workload is healthy.

        Currently the same as ``is_running()``. Kept as its own operation so
        endpoint or resource checks can be added without changing callers.
        """
        if not self.is_running():
            logger.warning(f"Health check failed: '{self.name}' is not running")
            return False
        logger.debug(f"Health check: '{self.name}' (PID {self._handle.pid}) is running")
        return True

    def recent_output(self) -> tuple[str, str]:
        """Return the buffered (stdout, stderr) tail of the current process."""
        if self._handle is None:
            return "", ""
        return self._handle.output.stdout_text(), self._handle.output.stderr_text()

    def close(self) -> None:
        """Explicit teardown. Stops a live process so it is not orphaned."""
        if self.is_running():
            logger.warning(f"Supervisor for '{self.name}' closing with a running process, stopping it")
            self.stop()
        elif self._handle is not None:
            self._release(self._handle)

    def __enter__(self) -> ProcessSupervisor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        handle = getattr(self, "_handle", None)
        if handle is not None and _probe(handle):
            logger.warning(
                f"Supervisor for '{self.config.name}' discarded while PID {handle.pid} "
                "is still running; call close() to stop it"
            )

    # --- internals ---

    def _consume(self, handle: _ProcessHandle) -> int | None:
        """Reap an exited process, drain its output and release the handle."""
        try:
            returncode = handle.popen.wait(timeout=self.config.stop_timeout)
        except subprocess.TimeoutExpired:
            handle.popen.kill()
            returncode = handle.popen.wait()
        handle.output.join(timeout=2.0)
        self._handle = None
        return returncode

    def _release(self, handle: _ProcessHandle) -> None:
        # Readers are not joined here: an orphaned grandchild may keep the
        # pipes open long after the tracked process is gone.
        handle.popen.poll()
        if self._handle is handle:
            self._handle = None
