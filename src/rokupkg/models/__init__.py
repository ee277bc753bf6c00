"""Pydantic data models for roku-pkg.

- Discovered and authorized devices (Device, AuthorizedDevice)
- Build tasks and their outcomes (BuildTask, TaskOutcome)
- Per-stage pipeline results (StageResult, DeploymentResult)
"""

from .device import AuthorizedDevice, Device
from .stage import DeploymentResult, Stage, StageResult, StageStatus
from .task import BUILD_KEYWORDS, BuildTask, TaskKind, TaskOutcome, TaskStatus

__all__ = [
    "BUILD_KEYWORDS",
    "AuthorizedDevice",
    "BuildTask",
    "DeploymentResult",
    "Device",
    "Stage",
    "StageResult",
    "StageStatus",
    "TaskKind",
    "TaskOutcome",
    "TaskStatus",
]
