"""Deployment pipeline for a single project on a single device.

Stages run in a fixed order:

    home -> build -> resolve config -> validate -> package check
    -> output prep -> rekey -> deploy -> relocate -> finalize (home)

Home navigation only ever produces warnings. Every other stage either
succeeds, is skipped, or raises a RokuPkgError that stops the run. The
one retry is the package-only fallback after a deployment timeout, and
it requires an affirmative answer from the DecisionProvider.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..config import Project, TimeoutsConfig
from ..errors import (
    ArtifactMissingError,
    RokuPkgError,
    TaskExecutionFailedError,
    TransferTimedOutError,
    ValidationFailedError,
)
from ..models import (
    AuthorizedDevice,
    BuildTask,
    DeploymentResult,
    Stage,
    StageResult,
    StageStatus,
    TaskStatus,
)
from ..services.backend import DeploymentBackend
from ..services.build_config import resolve_build_directory
from ..services.device_api import DeviceClient
from ..services.task_runner import BuildTaskRunner
from ..services.tasks import find_task, list_tasks, select_build_tasks
from .artifacts import ensure_output_dir, relocate_artifact
from .decisions import BuildAction, DecisionProvider
from .validation import MANIFEST_FILE, build_exists, validate_build_dir

logger = logging.getLogger(__name__)

BUILD_TIMEOUT_TIPS = [
    "Build tasks can take a long time, especially for large projects",
    "Try running the build manually first: cd to the project and run the build command",
    "Once built, you can use the --skip-build option",
]
REKEY_TIPS = [
    "Verify the signing key matches the signed package",
    "Ensure the signed package was created with this signing key",
    "Check that the package file is not corrupted",
]


@dataclass
class GenerateOptions:
    """Caller flags for a pipeline run."""

    skip_build: bool = False
    skip_rekey: bool = False
    package_only: bool = False
    build_task: str | None = None
    use_existing_build: bool = False


class DeploymentOrchestrator:
    """Drives one build-deploy-sign run.

    Args:
        device: Authorized target device
        project: Project to package
        backend: Sideload/rekey/package implementation
        decisions: Source of build-task and fallback answers
        device_client: ECP client for home navigation
        task_runner: Build task runner
        timeouts: Timeouts and settle delays
        task_reader: Returns the project's task catalog
        build_dir_resolver: Returns the project's build directory
        sleep: Awaitable used for settle delays
    """

    def __init__(
        self,
        device: AuthorizedDevice,
        project: Project,
        backend: DeploymentBackend,
        decisions: DecisionProvider,
        *,
        device_client: DeviceClient | None = None,
        task_runner: BuildTaskRunner | None = None,
        timeouts: TimeoutsConfig | None = None,
        task_reader: Callable[[Path], list[BuildTask]] = list_tasks,
        build_dir_resolver: Callable[[Path], Path] = resolve_build_directory,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.device = device
        self.project = project
        self.backend = backend
        self.decisions = decisions
        self.device_client = device_client or DeviceClient()
        self.task_runner = task_runner or BuildTaskRunner()
        self.timeouts = timeouts or TimeoutsConfig()
        self.task_reader = task_reader
        self.build_dir_resolver = build_dir_resolver
        self.sleep = sleep
        self.stages: list[StageResult] = []
        self._current = Stage.HOME_NAVIGATION

    def _record(
        self,
        status: StageStatus,
        message: str,
        remediation: list[str] | None = None,
        fallback_available: bool = False,
    ) -> StageResult:
        result = StageResult(
            stage=self._current,
            status=status,
            message=message,
            remediation=remediation or [],
            fallback_available=fallback_available,
        )
        self.stages.append(result)
        if status == StageStatus.WARNING:
            logger.warning(message)
        elif status != StageStatus.FAILED:
            logger.info(message)
        return result

    async def run(self, options: GenerateOptions) -> DeploymentResult:
        """Run every stage in order.

        Raises:
            RokuPkgError: The first fatal stage failure
        """
        self.stages = []
        logger.info(f"Generating package for {self.project.name}")
        try:
            await self.navigate_home(settle=True)
            await self.build(options)
            build_dir = self.resolve_config()
            self.validate(build_dir)
            self.check_signed_package()
            self.prepare_output()
            await self.rekey(options)
            produced, used_fallback = await self.deploy(options, build_dir)
            artifact = self.relocate(produced)
            return await self.finalize(artifact, used_fallback)
        except RokuPkgError as e:
            self._record(StageStatus.FAILED, e.message, e.remediation)
            raise
        finally:
            await self.device_client.aclose()

    async def navigate_home(self, settle: bool) -> StageResult:
        """Send the device to its home screen. Never raises."""
        self._current = Stage.HOME_NAVIGATION
        try:
            status = await self.device_client.press_home(self.device.address)
        except httpx.HTTPError as e:
            hint = (
                "ECP service might be disabled on the device"
                if isinstance(e, httpx.ConnectError)
                else str(e) or type(e).__name__
            )
            return self._record(
                StageStatus.WARNING,
                "Could not send device to home screen, continuing anyway",
                [hint],
            )

        if status in (200, 202):
            result = self._record(StageStatus.SUCCEEDED, "Device sent to home screen")
            if settle:
                await self.sleep(self.timeouts.home_settle)
            return result
        if status == 403:
            return self._record(
                StageStatus.WARNING,
                "ECP access restricted on device, continuing anyway",
                ["Enable ECP on your Roku device for better reliability"],
            )
        return self._record(
            StageStatus.WARNING, f"Home command returned status {status}, continuing anyway"
        )

    async def build(self, options: GenerateOptions) -> StageResult:
        """Decide whether to build, and run the chosen task."""
        self._current = Stage.BUILD_DECISION
        root = self.project.root_dir
        if options.skip_build:
            return self._record(StageStatus.SKIPPED, "Skipping build step (--skip-build)")

        exists = build_exists(self.build_dir_resolver(root))
        if options.use_existing_build:
            return self._use_existing(exists)

        all_tasks = self.task_reader(root)
        build_tasks = select_build_tasks(all_tasks)
        if not all_tasks:
            return self._record(StageStatus.SKIPPED, "No build tasks found")

        if options.build_task:
            task = find_task(all_tasks, options.build_task)
            if task is None:
                labels = [t.label for t in all_tasks]
                raise ValidationFailedError(
                    f'Task "{options.build_task}" not found',
                    problems=[f"Available task: {label}" for label in labels],
                    remediation=[f"Available tasks: {', '.join(labels)}"],
                )
            logger.info(f"Using specified task: {task.label}")
        else:
            choice = self.decisions.choose_build(build_tasks, all_tasks, exists)
            if choice.action == BuildAction.USE_EXISTING:
                return self._use_existing(exists)
            if choice.action == BuildAction.SKIP or choice.task is None:
                return self._record(StageStatus.SKIPPED, "Build skipped")
            task = choice.task

        logger.info(f"Running task: {task.label}")
        outcome = await self.task_runner.execute(task, root, timeout=self.timeouts.build_task)
        if not outcome.succeeded:
            tips = BUILD_TIMEOUT_TIPS if outcome.status == TaskStatus.TIMED_OUT else None
            raise TaskExecutionFailedError(outcome.describe(), outcome=outcome, remediation=tips)

        result = self._record(StageStatus.SUCCEEDED, outcome.describe())
        logger.info("Waiting for build output to be ready...")
        await self.sleep(self.timeouts.build_settle)
        return result

    def _use_existing(self, exists: bool) -> StageResult:
        if not exists:
            raise ValidationFailedError(
                "No existing build found. Cannot use --use-existing-build.",
                problems=[f"Missing required file: {MANIFEST_FILE}"],
            )
        return self._record(StageStatus.SUCCEEDED, "Using existing build directory")

    def resolve_config(self) -> Path:
        self._current = Stage.CONFIG_RESOLVE
        build_dir = self.build_dir_resolver(self.project.root_dir)
        self._record(StageStatus.SUCCEEDED, f"Using build directory: {build_dir}")
        return build_dir

    def validate(self, build_dir: Path) -> None:
        self._current = Stage.VALIDATE
        problems = validate_build_dir(build_dir)
        if problems:
            raise ValidationFailedError("Project validation failed", problems=problems)
        self._record(StageStatus.SUCCEEDED, "Project structure is valid")

    def check_signed_package(self) -> None:
        self._current = Stage.PACKAGE_CHECK
        path = self.project.sign_package_location
        if not path.is_file():
            raise ArtifactMissingError(
                f"Signed package not found: {path}",
                remediation=[
                    "Check that the signed package file exists at the specified location",
                    "Ensure the path is correct and the file is readable",
                    f"You can edit the project with: roku-pkg edit {self.project.name}",
                ],
            )
        self._record(StageStatus.SUCCEEDED, f"Found signed package: {path}")

    def prepare_output(self) -> None:
        self._current = Stage.OUTPUT_PREP
        try:
            output_dir = ensure_output_dir(self.project.output_location)
        except OSError as e:
            raise ValidationFailedError(f"Cannot create output directory: {e}") from e
        self._record(StageStatus.SUCCEEDED, f"Output directory ready: {output_dir}")

    async def rekey(self, options: GenerateOptions) -> None:
        self._current = Stage.REKEY
        if options.skip_rekey:
            self._record(
                StageStatus.SKIPPED,
                "Skipping device rekeying; assuming the device already has the right key",
            )
            return

        logger.info("Rekeying device with project signing credentials...")
        try:
            await self.backend.rekey(
                self.device, self.project.sign_key, self.project.sign_package_location
            )
        except RokuPkgError as e:
            e.add_remediation(
                [*REKEY_TIPS, f"You can edit the project with: roku-pkg edit {self.project.name}"]
            )
            raise
        self._record(StageStatus.SUCCEEDED, "Device rekeyed successfully")
        logger.info("Waiting for device to be ready after rekeying...")
        await self.sleep(self.timeouts.rekey_settle)

    async def deploy(self, options: GenerateOptions, build_dir: Path) -> tuple[Path, bool]:
        """Produce a signed package.

        Returns:
            Tuple of (produced package path, whether the fallback was used)
        """
        self._current = Stage.DEPLOY
        if options.package_only:
            logger.info("Creating package from already deployed app...")
            produced = await self._create_package(build_dir)
            self._record(StageStatus.SUCCEEDED, "Package created successfully")
            return produced, False

        timeout = self.timeouts.deploy_skip_build if options.skip_build else self.timeouts.deploy
        try:
            produced = await self._race_deploy(build_dir, timeout)
        except TransferTimedOutError as e:
            self._record(StageStatus.WARNING, e.message, e.remediation, fallback_available=True)
            if not self.decisions.confirm_package_only_fallback():
                raise TransferTimedOutError(
                    f"{e.message}; package-only fallback declined",
                    remediation=e.remediation,
                ) from e
            logger.info("Attempting to create package from already deployed app...")
            produced = await self._create_package(build_dir)
            self._record(StageStatus.SUCCEEDED, "Package created with package-only fallback")
            return produced, True

        self._record(StageStatus.SUCCEEDED, "Deployed and signed package")
        return produced, False

    async def _create_package(self, build_dir: Path) -> Path:
        return await self.backend.create_package(
            self.device,
            build_dir,
            self.project.sign_key,
            self.project.output_location.stem,
            self.project.files,
        )

    async def _race_deploy(self, build_dir: Path, timeout: float) -> Path:
        """Race deploy-and-sign against the timer, logging a heartbeat meanwhile.

        Raises:
            TransferTimedOutError: If the timer wins; the transfer has been
                cancelled and awaited before this is raised
        """
        logger.info(f"Deploying from build directory: {build_dir}")
        transfer = asyncio.create_task(
            self.backend.deploy_and_sign(
                self.device,
                build_dir,
                self.project.sign_key,
                self.project.output_location.stem,
                self.project.files,
            )
        )
        heartbeat = asyncio.create_task(self._heartbeat())
        try:
            done, _ = await asyncio.wait({transfer}, timeout=timeout)
        except BaseException:
            transfer.cancel()
            raise
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

        if transfer in done:
            return transfer.result()

        await self._abandon(transfer)
        raise TransferTimedOutError(f"Deployment timed out after {timeout:g} seconds")

    async def _heartbeat(self) -> None:
        interval = self.timeouts.heartbeat_interval
        elapsed = 0.0
        while True:
            await asyncio.sleep(interval)
            elapsed += interval
            logger.info(f"  ... still deploying ({elapsed:g}s elapsed)")

    async def _abandon(self, transfer: "asyncio.Task[Path]") -> None:
        """Cancel a timed-out transfer and wait for it to stop."""
        transfer.cancel()
        done, _ = await asyncio.wait({transfer}, timeout=self.timeouts.transfer_abandon)
        if not done:
            logger.warning(
                "Timed-out transfer did not stop; the device may still be processing it"
            )
        elif not transfer.cancelled() and transfer.exception() is not None:
            logger.debug(f"Abandoned transfer failed: {transfer.exception()!r}")

    def relocate(self, produced: Path) -> Path:
        self._current = Stage.RELOCATE
        target = self.project.output_location
        artifact = relocate_artifact(produced, target)
        self._record(StageStatus.SUCCEEDED, f"Package available at {artifact}")
        return artifact

    async def finalize(self, artifact: Path, used_fallback: bool) -> DeploymentResult:
        self._current = Stage.FINALIZE
        if not artifact.is_file():
            raise ArtifactMissingError(f"Package missing after relocation: {artifact}")
        size = artifact.stat().st_size
        self._record(StageStatus.SUCCEEDED, f"Package generated: {artifact} ({size} bytes)")
        await self.navigate_home(settle=False)
        return DeploymentResult(
            project=self.project.name,
            artifact_path=artifact,
            size_bytes=size,
            used_fallback=used_fallback,
            stages=list(self.stages),
        )
