"""Configuration management for roku-pkg.

The config file holds the saved device, the named projects, and optional
timeout overrides. It is only read and written between pipeline runs.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import BaseModel, Field, field_validator

from . import constants
from .models import AuthorizedDevice, Device

CONFIG_ENV_VAR = "ROKU_PKG_CONFIG"
PROJECT_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"


class DeviceConfig(BaseModel):
    """The saved Roku device."""

    ip: str = ""
    password: str = Field(default="", repr=False)
    name: str | None = None
    model_name: str | None = None
    serial_number: str | None = None
    software_version: str | None = None

    def is_configured(self) -> bool:
        return bool(self.ip and self.password)

    def to_authorized(self) -> AuthorizedDevice:
        """Build an AuthorizedDevice from the saved record."""
        device = Device(
            address=self.ip,
            name=self.name or f"device-{self.ip}",
            model_name=self.model_name or "Unknown",
            serial_number=self.serial_number or "Unknown",
            software_version=self.software_version,
        )
        return AuthorizedDevice(device=device, password=self.password)

    @classmethod
    def from_authorized(cls, authorized: AuthorizedDevice) -> "DeviceConfig":
        device = authorized.device
        return cls(
            ip=device.address,
            password=authorized.password,
            name=device.name,
            model_name=device.model_name,
            serial_number=device.serial_number,
            software_version=device.software_version,
        )


class Project(BaseModel):
    """A named Roku channel project."""

    name: str = Field(pattern=PROJECT_NAME_PATTERN)
    root_dir: Path = Field(description="Root directory of the channel source")
    sign_key: str = Field(repr=False, description="Signing password for the developer key")
    sign_package_location: Path = Field(description="Previously signed reference package")
    output_location: Path = Field(description="Where the signed package is written")
    files: list[str] | None = Field(default=None, description="Glob patterns to include")

    @field_validator("output_location")
    @classmethod
    def validate_pkg_extension(cls, value: Path) -> Path:
        if value.suffix.lower() != ".pkg":
            raise ValueError(f"Output location must have .pkg extension: {value}")
        return value


class TimeoutsConfig(BaseModel):
    """Pipeline timeouts and settle delays, in seconds."""

    build_task: float = constants.BUILD_TASK_TIMEOUT
    deploy: float = constants.DEPLOY_TIMEOUT
    deploy_skip_build: float = constants.DEPLOY_TIMEOUT_SKIP_BUILD
    heartbeat_interval: float = constants.HEARTBEAT_INTERVAL
    transfer_abandon: float = constants.TRANSFER_ABANDON_TIMEOUT
    home_settle: float = constants.HOME_SETTLE_DELAY
    build_settle: float = constants.BUILD_SETTLE_DELAY
    rekey_settle: float = constants.REKEY_SETTLE_DELAY


class RokuPkgConfig(BaseModel):
    """Root configuration for roku-pkg."""

    device: DeviceConfig = Field(default_factory=DeviceConfig)
    projects: list[Project] = Field(default_factory=list)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    @field_validator("projects")
    @classmethod
    def validate_unique_names(cls, projects: list[Project]) -> list[Project]:
        seen: set[str] = set()
        for project in projects:
            if project.name in seen:
                raise ValueError(f"Duplicate project name: {project.name}")
            seen.add(project.name)
        return projects


# Set by the --config global option
_config_path_override: Path | None = None


def set_config_path(path: Path | None) -> None:
    global _config_path_override
    _config_path_override = path


def get_config_path() -> Path:
    """Get the config file path: --config, then ROKU_PKG_CONFIG, then the default."""
    if _config_path_override is not None:
        return _config_path_override
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "roku-pkg" / "config.toml"


def load_config(config_path: Path) -> RokuPkgConfig:
    """Load config from a TOML file.

    Args:
        config_path: Path to config.toml

    Returns:
        Loaded configuration, or defaults if the file doesn't exist
    """
    if not config_path.exists():
        return RokuPkgConfig()
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    return RokuPkgConfig.model_validate(data)


def save_config(config: RokuPkgConfig, config_path: Path) -> Path:
    """Write config to a TOML file, creating parent directories.

    Args:
        config: Configuration to persist
        config_path: Destination path

    Returns:
        Path to the written config file
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = config.model_dump(mode="json", exclude_none=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
    return config_path


class ProjectStore:
    """Persists named projects and the singleton device record."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.path = config_path or get_config_path()
        self.config = load_config(self.path)

    def get(self, name: str) -> Project | None:
        return next((p for p in self.config.projects if p.name == name), None)

    def list(self) -> list[Project]:
        return list(self.config.projects)

    def get_device(self) -> DeviceConfig:
        return self.config.device

    def set_device(self, device: DeviceConfig) -> None:
        self.config.device = device
        self.save()

    def add(self, project: Project) -> None:
        """Add a project.

        Raises:
            ValueError: If a project with the same name exists
        """
        if self.get(project.name) is not None:
            raise ValueError(f"Project '{project.name}' already exists")
        self.config.projects.append(project)
        self.save()

    def update(self, name: str, /, **changes: Any) -> Project | None:
        """Apply field changes to a project and persist.

        Returns:
            The updated project, or None if no project has that name
        """
        for index, project in enumerate(self.config.projects):
            if project.name == name:
                updated = Project.model_validate({**project.model_dump(), **changes})
                self.config.projects[index] = updated
                self.save()
                return updated
        return None

    def remove(self, name: str) -> bool:
        before = len(self.config.projects)
        self.config.projects = [p for p in self.config.projects if p.name != name]
        if len(self.config.projects) == before:
            return False
        self.save()
        return True

    def save(self) -> Path:
        return save_config(self.config, self.path)
