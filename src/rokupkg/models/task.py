"""Build task models.

Tasks are read from a project's ``.vscode/tasks.json`` and are never
written back.
"""

from enum import Enum

from pydantic import BaseModel, Field

BUILD_KEYWORDS = ("build", "compile", "package", "deploy")


class TaskKind(str, Enum):
    """How a task's command is resolved into a process."""

    PROCESS = "process"
    SHELL = "shell"
    NPM = "npm"


class BuildTask(BaseModel):
    """A single externally defined build task."""

    label: str
    kind: TaskKind = TaskKind.PROCESS
    command: str | None = None
    script: str | None = None
    args: list[str] = Field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    group: str | None = None

    def is_build_task(self) -> bool:
        """Return True if the label or group marks this as a build task."""
        label = self.label.lower()
        return any(word in label for word in BUILD_KEYWORDS) or self.group == "build"


class TaskStatus(str, Enum):
    """Outcome of running a build task."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    KILLED = "killed"
    TIMED_OUT = "timed_out"


class TaskOutcome(BaseModel):
    """Result of BuildTaskRunner.execute."""

    label: str
    status: TaskStatus
    exit_code: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED

    def describe(self) -> str:
        """Return a short description of the outcome."""
        if self.status == TaskStatus.SUCCEEDED:
            return f'Task "{self.label}" completed successfully'
        if self.status == TaskStatus.TIMED_OUT:
            return f'Task "{self.label}" timed out'
        if self.status == TaskStatus.KILLED:
            return f'Task "{self.label}" was terminated'
        return f'Task "{self.label}" failed with exit code {self.exit_code}'
