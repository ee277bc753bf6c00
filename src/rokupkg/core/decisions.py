"""Decision inputs for the deployment pipeline.

The pipeline asks two questions it cannot answer itself: which build
task to run, and whether to fall back to package-only mode after a
deployment timeout. Answers come from a DecisionProvider so the
pipeline runs the same way interactively and in automation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from ..models import BuildTask


class BuildAction(str, Enum):
    """What to do in the build stage."""

    RUN = "run"
    USE_EXISTING = "use_existing"
    SKIP = "skip"


@dataclass
class BuildChoice:
    """Answer to the build-task question."""

    action: BuildAction
    task: BuildTask | None = None


class DecisionProvider(Protocol):
    """Answers the pipeline's questions."""

    def choose_build(
        self,
        build_tasks: list[BuildTask],
        all_tasks: list[BuildTask],
        build_exists: bool,
    ) -> BuildChoice: ...

    def confirm_package_only_fallback(self) -> bool: ...


@dataclass
class ProgrammaticDecisions:
    """Pre-supplied answers, for automation and tests.

    Attributes:
        build_label: Run the task with this label when asked to choose
        build_action: Action used when no label is given
        accept_fallback: Answer to the package-only fallback offer
        fallback_offers: Number of times the fallback was offered
    """

    build_label: str | None = None
    build_action: BuildAction = BuildAction.SKIP
    accept_fallback: bool = False
    fallback_offers: int = 0

    def choose_build(
        self,
        build_tasks: list[BuildTask],
        all_tasks: list[BuildTask],
        build_exists: bool,
    ) -> BuildChoice:
        if self.build_label is not None:
            task = next((t for t in all_tasks if t.label == self.build_label), None)
            if task is not None:
                return BuildChoice(BuildAction.RUN, task)
        if self.build_action == BuildAction.USE_EXISTING and build_exists:
            return BuildChoice(BuildAction.USE_EXISTING)
        if self.build_action == BuildAction.RUN and build_tasks:
            return BuildChoice(BuildAction.RUN, build_tasks[0])
        return BuildChoice(BuildAction.SKIP)

    def confirm_package_only_fallback(self) -> bool:
        self.fallback_offers += 1
        return self.accept_fallback
