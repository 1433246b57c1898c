"""Status and result models shared by the supervisors.

Uses Pydantic so results can be rendered or serialized by outer layers
(dashboards, CLI) without extra glue.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, field_validator


class ContainerStatus(str, Enum):
    """Closed set of container states reported to callers."""

    RUNNING = "running"
    STOPPED = "stopped"
    PAUSED = "paused"
    RESTARTING = "restarting"
    DEAD = "dead"
    CREATED = "created"
    REMOVING = "removing"
    UNKNOWN = "unknown"

    @classmethod
    def from_runtime_state(cls, state: str | None) -> ContainerStatus:
        """Map a runtime-reported state string onto the closed enumeration.

        Total over all inputs: unrecognized, empty or missing states map to
        UNKNOWN instead of raising, so newer runtime states never break callers.
        """
        if not state:
            return cls.UNKNOWN
        return _RUNTIME_STATES.get(state.strip().lower(), cls.UNKNOWN)

    def __str__(self) -> str:
        return self.value


# Docker reports "exited" for stopped containers; everything else matches by name.
_RUNTIME_STATES: dict[str, ContainerStatus] = {
    "running": ContainerStatus.RUNNING,
    "exited": ContainerStatus.STOPPED,
    "paused": ContainerStatus.PAUSED,
    "restarting": ContainerStatus.RESTARTING,
    "dead": ContainerStatus.DEAD,
    "created": ContainerStatus.CREATED,
    "removing": ContainerStatus.REMOVING,
}


def normalize_container_name(name: str) -> str:
    """Strip the leading path separator Docker puts on container names."""
    return name.lstrip("/")


class ContainerInfo(BaseModel):
    """Snapshot of one container, recomputed on every query."""

    name: str
    status: ContainerStatus
    image: str = ""

    @field_validator("name")
    @classmethod
    def _strip_leading_slash(cls, value: str) -> str:
        return normalize_container_name(value)


class CommandResult(BaseModel):
    """Result of one external tool invocation."""

    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled


class UpdateOutcome(BaseModel):
    """Result of an update workflow.

    Always populated: failures are carried as data (``success=False``) rather
    than raised, so a rollout UI can show how far the steps progressed.

    Attributes:
        success: True when every step exited with status zero.
        output: Accumulated stdout of every step attempted so far.
        error: Stderr of the failing step, or a timeout/cancellation message.
        timed_out: The failing step exceeded its time budget.
        cancelled: The failing step was aborted through a cancellation token.
    """

    success: bool
    output: str = ""
    error: str | None = None
    timed_out: bool = False
    cancelled: bool = False

    @classmethod
    def failed(cls, output: str, result: CommandResult) -> UpdateOutcome:
        """Build a failure outcome from the step that failed."""
        return cls(
            success=False,
            output=output,
            error=result.stderr,
            timed_out=result.timed_out,
            cancelled=result.cancelled,
        )
