"""Pipeline stage results."""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class Stage(str, Enum):
    """Stages of the deployment pipeline, in execution order."""

    HOME_NAVIGATION = "home_navigation"
    BUILD_DECISION = "build_decision"
    CONFIG_RESOLVE = "config_resolve"
    VALIDATE = "validate"
    PACKAGE_CHECK = "package_check"
    OUTPUT_PREP = "output_prep"
    REKEY = "rekey"
    DEPLOY = "deploy"
    RELOCATE = "relocate"
    FINALIZE = "finalize"


class StageStatus(str, Enum):
    """Outcome of a single stage."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    WARNING = "warning"  # soft failure, pipeline continued
    FAILED = "failed"


class StageResult(BaseModel):
    """Outcome of one pipeline stage.

    Attributes:
        stage: Which stage produced this result.
        status: Success, skip, soft warning, or fatal failure.
        message: One-line summary.
        remediation: Suggested next steps for warnings and failures.
        fallback_available: Whether an alternative path exists.
    """

    stage: Stage
    status: StageStatus
    message: str = ""
    remediation: list[str] = Field(default_factory=list)
    fallback_available: bool = False
    finished_at: datetime = Field(default_factory=datetime.now)


class DeploymentResult(BaseModel):
    """Final result of a successful pipeline run."""

    project: str
    artifact_path: Path
    size_bytes: int
    used_fallback: bool = False
    stages: list[StageResult] = Field(default_factory=list)

    @property
    def size_kb(self) -> str:
        return f"{self.size_bytes / 1024:.2f}"
