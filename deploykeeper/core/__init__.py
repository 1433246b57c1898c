"""Core lifecycle supervisors."""

from deploykeeper.core.containers import ContainerSupervisor
from deploykeeper.core.errors import (
    AlreadyRunningError,
    DeployKeeperError,
    InvalidConfigError,
    ProcessStartError,
    RuntimeCommunicationError,
)
from deploykeeper.core.models import ContainerInfo, ContainerStatus, UpdateOutcome
from deploykeeper.core.process import ProcessConfig, ProcessSupervisor

__all__ = [
    "AlreadyRunningError",
    "ContainerInfo",
    "ContainerStatus",
    "ContainerSupervisor",
    "DeployKeeperError",
    "InvalidConfigError",
    "ProcessConfig",
    "ProcessStartError",
    "ProcessSupervisor",
    "RuntimeCommunicationError",
    "UpdateOutcome",
]
