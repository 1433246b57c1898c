"""Configuration loading.

Settings come from a YAML file (default ``deploykeeper.yaml``) and can be
overridden by environment variables:

- APP_WORKING_DIR, APP_START_COMMAND (shell-split)
- DOCKER_COMPOSE_FILE, DOCKER_CONTAINERS (comma-separated)
- DEPLOYKEEPER_LOG_LEVEL
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, Field, field_validator

from deploykeeper.core.compose import ComposeRunner
from deploykeeper.core.containers import GRACEFUL_STOP_TIMEOUT, ContainerSupervisor
from deploykeeper.core.errors import InvalidConfigError
from deploykeeper.core.process import ProcessConfig, ProcessSupervisor
from deploykeeper.core.runtime import DockerRuntime

DEFAULT_CONFIG_PATH = Path("deploykeeper.yaml")


class AppSettings(BaseModel):
    """Single-process workload."""

    working_dir: Path
    command: list[str]
    name: str = "app"
    stop_timeout: float = Field(default=10.0, gt=0)
    health_interval: float = Field(default=5.0, gt=0)

    @field_validator("command")
    @classmethod
    def _command_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("command must not be empty")
        return value


class DockerSettings(BaseModel):
    """Compose-managed container workload."""

    compose_file: Path
    containers: list[str]
    docker_binary: str = "docker"
    compose_command: list[str] = Field(default_factory=lambda: ["docker", "compose"])
    compose_timeout: float = Field(default=600.0, gt=0)
    stop_timeout: int = Field(default=GRACEFUL_STOP_TIMEOUT, ge=0)

    @field_validator("containers")
    @classmethod
    def _at_least_one_container(cls, value: list[str]) -> list[str]:
        names = [name.strip() for name in value if name.strip()]
        if not names:
            raise ValueError("at least one Docker container must be specified")
        return names


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    """Top-level configuration. Either workload section may be omitted."""

    app: AppSettings | None = None
    docker: DockerSettings | None = None
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    app = dict(data.get("app") or {})
    if env.get("APP_WORKING_DIR"):
        app["working_dir"] = env["APP_WORKING_DIR"]
    if env.get("APP_START_COMMAND"):
        app["command"] = shlex.split(env["APP_START_COMMAND"])
    if app:
        data["app"] = app

    docker = dict(data.get("docker") or {})
    if env.get("DOCKER_COMPOSE_FILE"):
        docker["compose_file"] = env["DOCKER_COMPOSE_FILE"]
    if env.get("DOCKER_CONTAINERS"):
        docker["containers"] = env["DOCKER_CONTAINERS"].split(",")
    if docker:
        data["docker"] = docker

    if env.get("DEPLOYKEEPER_LOG_LEVEL"):
        data["logging"] = {**(data.get("logging") or {}), "level": env["DEPLOYKEEPER_LOG_LEVEL"]}
    return data


def load_settings(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from YAML and environment.

    A missing file is only an error when ``path`` was given explicitly;
    otherwise the environment alone may provide the configuration.

    Raises:
        InvalidConfigError: Unreadable YAML or values that fail validation.
    """
    env = os.environ if env is None else env
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise InvalidConfigError(f"Failed to read config '{config_path}': {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise InvalidConfigError(f"Config '{config_path}' must be a mapping")
        data = loaded or {}
    elif path is not None:
        raise InvalidConfigError(f"Config file not found: {config_path}")

    data = _apply_env_overrides(data, env)
    try:
        return Settings.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidConfigError(f"Invalid configuration: {e}") from e


def build_process_supervisor(settings: Settings) -> ProcessSupervisor:
    if settings.app is None:
        raise InvalidConfigError("No 'app' section configured")
    app = settings.app
    return ProcessSupervisor(
        ProcessConfig(
            working_dir=app.working_dir,
            command=list(app.command),
            name=app.name,
            stop_timeout=app.stop_timeout,
        )
    )


def build_container_supervisor(settings: Settings) -> ContainerSupervisor:
    if settings.docker is None:
        raise InvalidConfigError("No 'docker' section configured")
    docker = settings.docker
    return ContainerSupervisor(
        compose_file=docker.compose_file,
        container_names=docker.containers,
        runtime=DockerRuntime(docker_binary=docker.docker_binary),
        compose=ComposeRunner(
            docker.compose_file,
            base_command=docker.compose_command,
            timeout=docker.compose_timeout,
        ),
        stop_timeout=docker.stop_timeout,
    )
