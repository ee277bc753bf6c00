"""Tests for the deployment orchestrator."""

import asyncio
import logging
import shutil
from pathlib import Path

import httpx
import pytest

from rokupkg.config import Project, TimeoutsConfig
from rokupkg.core import (
    BuildAction,
    DeploymentOrchestrator,
    GenerateOptions,
    ProgrammaticDecisions,
)
from rokupkg.errors import (
    ArtifactMissingError,
    AuthenticationFailedError,
    NetworkUnreachableError,
    TaskExecutionFailedError,
    TransferTimedOutError,
    ValidationFailedError,
)
from rokupkg.models import (
    AuthorizedDevice,
    BuildTask,
    Stage,
    StageStatus,
    TaskOutcome,
    TaskStatus,
)

FAST_TIMEOUTS = TimeoutsConfig(
    build_task=30,
    deploy=0.6,
    deploy_skip_build=0.2,
    heartbeat_interval=0.05,
    transfer_abandon=2,
)


class FakeBackend:
    """Records calls and writes packages into a staging directory."""

    def __init__(
        self,
        staging: Path,
        deploy_delay: float = 0,
        rekey_error: Exception | None = None,
        deploy_error: Exception | None = None,
    ) -> None:
        self.staging = staging
        self.deploy_delay = deploy_delay
        self.rekey_error = rekey_error
        self.deploy_error = deploy_error
        self.events: list[str] = []

    def _write(self, out_file: str) -> Path:
        self.staging.mkdir(parents=True, exist_ok=True)
        path = self.staging / f"{out_file}.pkg"
        path.write_bytes(b"SIGNED" * 10)
        return path

    async def rekey(self, device, signing_password, signed_package) -> None:
        self.events.append("rekey")
        if self.rekey_error is not None:
            raise self.rekey_error

    async def deploy_and_sign(self, device, build_dir, signing_password, out_file, files=None):
        self.events.append("deploy")
        try:
            await asyncio.sleep(self.deploy_delay)
        except asyncio.CancelledError:
            self.events.append("deploy-cancelled")
            raise
        if self.deploy_error is not None:
            raise self.deploy_error
        return self._write(out_file)

    async def create_package(self, device, build_dir, signing_password, out_file, files=None):
        self.events.append("package")
        return self._write(out_file)


class FakeDeviceClient:
    """Stands in for DeviceClient's home keypress."""

    def __init__(self, status: int | None = 200, error: Exception | None = None) -> None:
        self.status = status
        self.error = error
        self.presses = 0

    async def press_home(self, address: str) -> int:
        self.presses += 1
        if self.error is not None:
            raise self.error
        return self.status

    async def aclose(self) -> None:
        pass


class FakeRunner:
    def __init__(self, status: TaskStatus = TaskStatus.SUCCEEDED, exit_code: int | None = 0):
        self.status = status
        self.exit_code = exit_code
        self.ran: list[str] = []

    async def execute(self, task: BuildTask, project_root: Path, timeout=None) -> TaskOutcome:
        self.ran.append(task.label)
        return TaskOutcome(label=task.label, status=self.status, exit_code=self.exit_code)


class Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def staging(tmp_path: Path) -> Path:
    return tmp_path / "staged"


@pytest.fixture
def sleeps() -> Sleeps:
    return Sleeps()


@pytest.fixture
def make_orchestrator(authorized_device: AuthorizedDevice, sleeps: Sleeps):
    def make(
        project: Project,
        backend: FakeBackend,
        decisions: ProgrammaticDecisions | None = None,
        device_client: FakeDeviceClient | None = None,
        runner: FakeRunner | None = None,
        tasks: list[BuildTask] | None = None,
    ) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            authorized_device,
            project,
            backend,
            decisions or ProgrammaticDecisions(),
            device_client=device_client or FakeDeviceClient(),
            task_runner=runner or FakeRunner(),
            timeouts=FAST_TIMEOUTS,
            task_reader=lambda root: list(tasks or []),
            sleep=sleeps,
        )

    return make


SKIP_ALL = GenerateOptions(skip_build=True, skip_rekey=True)


@pytest.mark.asyncio
@pytest.mark.unit
class TestPackageOnly:
    """Package-only mode and artifact relocation."""

    async def test_relocates_staged_package(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        """The staged package ends up at the output path and the staged copy is removed."""
        backend = FakeBackend(staging)
        orchestrator = make_orchestrator(project, backend)
        options = GenerateOptions(skip_build=True, skip_rekey=True, package_only=True)

        result = await orchestrator.run(options)

        assert backend.events == ["package"]
        assert result.artifact_path == project.output_location
        assert project.output_location.is_file()
        assert not (staging / "test-channel.pkg").exists()
        assert result.size_bytes == 60
        assert result.used_fallback is False

    async def test_unwritable_output_fails_relocate(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        """A filesystem error while copying is reported as a failed Relocate stage."""
        project.output_location.mkdir(parents=True)
        orchestrator = make_orchestrator(project, FakeBackend(staging))
        options = GenerateOptions(skip_build=True, skip_rekey=True, package_only=True)

        with pytest.raises(ArtifactMissingError, match="Could not move package"):
            await orchestrator.run(options)

        last = orchestrator.stages[-1]
        assert last.stage == Stage.RELOCATE
        assert last.status == StageStatus.FAILED

    async def test_stage_order(self, make_orchestrator, project: Project, staging: Path) -> None:
        orchestrator = make_orchestrator(project, FakeBackend(staging))
        result = await orchestrator.run(SKIP_ALL)
        stages = [s.stage for s in result.stages]
        assert stages == [
            Stage.HOME_NAVIGATION,
            Stage.BUILD_DECISION,
            Stage.CONFIG_RESOLVE,
            Stage.VALIDATE,
            Stage.PACKAGE_CHECK,
            Stage.OUTPUT_PREP,
            Stage.REKEY,
            Stage.DEPLOY,
            Stage.RELOCATE,
            Stage.FINALIZE,
            Stage.HOME_NAVIGATION,
        ]


@pytest.mark.asyncio
@pytest.mark.unit
class TestDeployTimeout:
    """Deployment race against the timer."""

    async def test_declined_fallback_fails_without_artifact(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        backend = FakeBackend(staging, deploy_delay=10)
        decisions = ProgrammaticDecisions(accept_fallback=False)
        orchestrator = make_orchestrator(project, backend, decisions)

        with pytest.raises(TransferTimedOutError):
            await orchestrator.run(GenerateOptions(skip_rekey=True))

        assert decisions.fallback_offers == 1
        assert backend.events == ["deploy", "deploy-cancelled"]
        assert not project.output_location.exists()
        warning = next(s for s in orchestrator.stages if s.status == StageStatus.WARNING)
        assert warning.fallback_available
        assert orchestrator.stages[-1].status == StageStatus.FAILED

    async def test_accepted_fallback_waits_for_cancelled_transfer(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        """The abandoned transfer has stopped before package-only starts."""
        backend = FakeBackend(staging, deploy_delay=10)
        decisions = ProgrammaticDecisions(accept_fallback=True)
        orchestrator = make_orchestrator(project, backend, decisions)

        result = await orchestrator.run(GenerateOptions(skip_rekey=True))

        assert backend.events == ["deploy", "deploy-cancelled", "package"]
        assert result.used_fallback is True
        assert project.output_location.is_file()

    async def test_skip_build_uses_shorter_budget(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        """0.35s fits the fresh-build budget but not the skip-build one."""
        options = GenerateOptions(skip_rekey=True)
        fresh = make_orchestrator(project, FakeBackend(staging, deploy_delay=0.35))
        await fresh.run(options)

        skipped = make_orchestrator(project, FakeBackend(staging, deploy_delay=0.35))
        with pytest.raises(TransferTimedOutError):
            await skipped.run(SKIP_ALL)

    async def test_heartbeat_logged(
        self, make_orchestrator, project: Project, staging: Path, caplog
    ) -> None:
        caplog.set_level(logging.INFO, logger="rokupkg")
        orchestrator = make_orchestrator(project, FakeBackend(staging, deploy_delay=0.2))
        await orchestrator.run(GenerateOptions(skip_rekey=True))
        assert "still deploying" in caplog.text

    async def test_backend_error_propagates_unchanged(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        error = NetworkUnreachableError("connection refused")
        decisions = ProgrammaticDecisions(accept_fallback=True)
        orchestrator = make_orchestrator(
            project, FakeBackend(staging, deploy_error=error), decisions
        )
        with pytest.raises(NetworkUnreachableError) as exc_info:
            await orchestrator.run(SKIP_ALL)
        assert exc_info.value is error
        assert decisions.fallback_offers == 0


@pytest.mark.asyncio
@pytest.mark.unit
class TestPreDeployStages:
    """Validation, package check, and rekey."""

    async def test_validation_reports_all_problems(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        (project.root_dir / "manifest").unlink()
        shutil.rmtree(project.root_dir / "source")
        backend = FakeBackend(staging)

        with pytest.raises(ValidationFailedError) as exc_info:
            await make_orchestrator(project, backend).run(SKIP_ALL)

        assert exc_info.value.problems == [
            "Missing required file: manifest",
            "Missing required directory: source",
        ]
        assert backend.events == []

    async def test_missing_signed_package(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        project.sign_package_location.unlink()
        with pytest.raises(ArtifactMissingError) as exc_info:
            await make_orchestrator(project, FakeBackend(staging)).run(SKIP_ALL)
        assert "roku-pkg edit test-channel" in " ".join(exc_info.value.remediation)

    async def test_output_directory_created(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        assert not project.output_location.parent.exists()
        await make_orchestrator(project, FakeBackend(staging)).run(SKIP_ALL)
        assert project.output_location.parent.is_dir()

    async def test_rekey_failure_adds_tips(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        backend = FakeBackend(staging, rekey_error=AuthenticationFailedError("Rekey failed"))
        with pytest.raises(AuthenticationFailedError) as exc_info:
            await make_orchestrator(project, backend).run(GenerateOptions(skip_build=True))

        tips = exc_info.value.remediation
        assert "Verify the signing key matches the signed package" in tips
        assert backend.events == ["rekey"]

    async def test_rekey_settle_delay(
        self, make_orchestrator, project: Project, staging: Path, sleeps: Sleeps
    ) -> None:
        backend = FakeBackend(staging)
        await make_orchestrator(project, backend).run(GenerateOptions(skip_build=True))
        assert backend.events == ["rekey", "deploy"]
        assert FAST_TIMEOUTS.rekey_settle in sleeps.delays


@pytest.mark.asyncio
@pytest.mark.unit
class TestHomeNavigation:
    """Home navigation never stops the pipeline."""

    @pytest.mark.parametrize(
        "client",
        [
            FakeDeviceClient(status=403),
            FakeDeviceClient(status=500),
            FakeDeviceClient(error=httpx.ConnectError("refused")),
        ],
    )
    async def test_failures_are_warnings(
        self, make_orchestrator, project: Project, staging: Path, client: FakeDeviceClient
    ) -> None:
        result = await make_orchestrator(project, FakeBackend(staging), device_client=client).run(
            SKIP_ALL
        )
        home = [s for s in result.stages if s.stage == Stage.HOME_NAVIGATION]
        assert [s.status for s in home] == [StageStatus.WARNING, StageStatus.WARNING]

    async def test_settle_only_before_pipeline(
        self, make_orchestrator, project: Project, staging: Path, sleeps: Sleeps
    ) -> None:
        client = FakeDeviceClient(status=202)
        await make_orchestrator(project, FakeBackend(staging), device_client=client).run(SKIP_ALL)
        assert client.presses == 2
        assert sleeps.delays == [FAST_TIMEOUTS.home_settle]


@pytest.mark.asyncio
@pytest.mark.unit
class TestBuildStage:
    """Build decision and execution."""

    TASKS = [
        BuildTask(label="build-prod", command="make"),
        BuildTask(label="lint", command="eslint"),
    ]

    async def test_runs_selected_task(
        self, make_orchestrator, project: Project, staging: Path, sleeps: Sleeps
    ) -> None:
        runner = FakeRunner()
        orchestrator = make_orchestrator(
            project,
            FakeBackend(staging),
            ProgrammaticDecisions(build_action=BuildAction.RUN),
            runner=runner,
            tasks=self.TASKS,
        )
        await orchestrator.run(GenerateOptions(skip_rekey=True))
        assert runner.ran == ["build-prod"]
        assert FAST_TIMEOUTS.build_settle in sleeps.delays

    async def test_label_option_selects_any_task(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        runner = FakeRunner()
        orchestrator = make_orchestrator(
            project, FakeBackend(staging), runner=runner, tasks=self.TASKS
        )
        await orchestrator.run(GenerateOptions(skip_rekey=True, build_task="lint"))
        assert runner.ran == ["lint"]

    async def test_unknown_label_lists_available(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        orchestrator = make_orchestrator(project, FakeBackend(staging), tasks=self.TASKS)
        with pytest.raises(ValidationFailedError) as exc_info:
            await orchestrator.run(GenerateOptions(skip_rekey=True, build_task="missing"))
        assert "build-prod, lint" in exc_info.value.remediation[0]

    @pytest.mark.parametrize(
        ("status", "exit_code"),
        [(TaskStatus.FAILED, 2), (TaskStatus.KILLED, -9), (TaskStatus.TIMED_OUT, None)],
    )
    async def test_failed_task_is_fatal(
        self,
        make_orchestrator,
        project: Project,
        staging: Path,
        status: TaskStatus,
        exit_code: int | None,
    ) -> None:
        backend = FakeBackend(staging)
        orchestrator = make_orchestrator(
            project,
            backend,
            ProgrammaticDecisions(build_action=BuildAction.RUN),
            runner=FakeRunner(status, exit_code),
            tasks=self.TASKS,
        )
        with pytest.raises(TaskExecutionFailedError) as exc_info:
            await orchestrator.run(GenerateOptions(skip_rekey=True))

        assert exc_info.value.outcome.status == status
        assert backend.events == []
        timeout_tip = "Build tasks can take a long time, especially for large projects"
        assert (timeout_tip in exc_info.value.remediation) == (status == TaskStatus.TIMED_OUT)

    async def test_no_tasks_skips_build(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        runner = FakeRunner()
        result = await make_orchestrator(project, FakeBackend(staging), runner=runner).run(
            GenerateOptions(skip_rekey=True)
        )
        build = next(s for s in result.stages if s.stage == Stage.BUILD_DECISION)
        assert build.status == StageStatus.SKIPPED
        assert runner.ran == []

    async def test_use_existing_choice(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        runner = FakeRunner()
        orchestrator = make_orchestrator(
            project,
            FakeBackend(staging),
            ProgrammaticDecisions(build_action=BuildAction.USE_EXISTING),
            runner=runner,
            tasks=self.TASKS,
        )
        await orchestrator.run(GenerateOptions(skip_rekey=True))
        assert runner.ran == []

    async def test_use_existing_without_build_fails(
        self, make_orchestrator, project: Project, staging: Path
    ) -> None:
        (project.root_dir / "manifest").unlink()
        orchestrator = make_orchestrator(project, FakeBackend(staging))
        with pytest.raises(ValidationFailedError, match="No existing build"):
            await orchestrator.run(GenerateOptions(skip_rekey=True, use_existing_build=True))
        assert orchestrator.stages[-1].stage == Stage.BUILD_DECISION
        assert orchestrator.stages[-1].status == StageStatus.FAILED
