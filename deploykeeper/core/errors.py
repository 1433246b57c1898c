"""Hard errors raised by the lifecycle supervisors.

Failures of the compose tool during updates are NOT represented here: they are
returned as ``UpdateOutcome`` values so batch callers can report progress.
"""

from __future__ import annotations


class DeployKeeperError(Exception):
    """Base class for supervisor errors."""

    pass


class InvalidConfigError(DeployKeeperError):
    """Configuration is missing or invalid (empty command, missing compose file)."""

    pass


class AlreadyRunningError(DeployKeeperError):
    """start() was called while a live process handle exists."""

    pass


class ProcessStartError(DeployKeeperError):
    """The process could not be spawned or exited during the startup grace period.

    Captured output of a crashed launch is kept on the exception so callers can
    render it without parsing the message.
    """

    def __init__(self, message: str, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class RuntimeCommunicationError(DeployKeeperError):
    """The container runtime could not be reached or rejected a request."""

    pass
