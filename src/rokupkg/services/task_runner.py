"""Async subprocess runner for build tasks.

Tasks run with the caller's stdin/stdout/stderr so build output streams
straight to the terminal. Each task gets its own process group; on
timeout the group receives SIGTERM, then SIGKILL if it is still alive
after the grace period.
"""

import asyncio
import logging
import os
import shlex
import signal
from pathlib import Path

from ..constants import GRACEFUL_SHUTDOWN_TIMEOUT
from ..errors import TaskExecutionFailedError
from ..models import BuildTask, TaskKind, TaskOutcome, TaskStatus

logger = logging.getLogger(__name__)


def resolve_command(task: BuildTask) -> list[str]:
    """Turn a task definition into an argv list.

    Raises:
        TaskExecutionFailedError: If no command can be determined
    """
    if task.kind == TaskKind.NPM and task.script:
        return ["npm", "run", task.script]
    if task.kind == TaskKind.SHELL and task.command:
        try:
            return shlex.split(task.command) + list(task.args)
        except ValueError as e:
            raise TaskExecutionFailedError(
                f'Invalid command syntax in task "{task.label}": {e}'
            ) from e
    if task.command:
        return [task.command, *task.args]
    raise TaskExecutionFailedError(f"Cannot determine command for task: {task.label}")


def resolve_cwd(task: BuildTask, project_root: Path) -> Path:
    """Task cwd override (absolute or relative to the project root), else the root."""
    if not task.cwd:
        return project_root
    cwd = Path(task.cwd)
    return cwd if cwd.is_absolute() else project_root / cwd


def _signal_group(proc: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass


class BuildTaskRunner:
    """Executes build tasks with a hard timeout and escalating termination."""

    def __init__(self, grace_period: float = GRACEFUL_SHUTDOWN_TIMEOUT) -> None:
        self.grace_period = grace_period

    async def execute(
        self,
        task: BuildTask,
        project_root: Path,
        timeout: float | None = None,
    ) -> TaskOutcome:
        """Run a task to completion.

        Args:
            task: Task to run
            project_root: Project root used to resolve the working directory
            timeout: Seconds before the task is terminated, or None for no limit

        Returns:
            TaskOutcome with succeeded/failed/killed/timed_out status

        Raises:
            TaskExecutionFailedError: If the command cannot be resolved or started
        """
        argv = resolve_command(task)
        cwd = resolve_cwd(task, project_root)
        env = {**os.environ, **task.env}

        logger.info(f"Executing: {shlex.join(argv)}")
        logger.info(f"Working directory: {cwd}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=env,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise TaskExecutionFailedError(f'Task "{task.label}" could not start: {e}') from e

        logger.debug(f'Task "{task.label}" started with PID {proc.pid}')
        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except TimeoutError:
            timed_out = True
            logger.warning(f"Task timed out after {timeout}s. Terminating process...")
            await self._terminate(proc)
        except asyncio.CancelledError:
            logger.warning(f'Task "{task.label}" cancelled')
            await self._terminate(proc)
            raise

        return_code = proc.returncode
        if timed_out:
            status = TaskStatus.TIMED_OUT
        elif return_code == 0:
            status = TaskStatus.SUCCEEDED
        elif return_code is None or return_code < 0:
            status = TaskStatus.KILLED
        else:
            status = TaskStatus.FAILED

        outcome = TaskOutcome(label=task.label, status=status, exit_code=return_code)
        logger.debug(f"{outcome.describe()} (return code {return_code})")
        return outcome

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after the grace period."""
        if proc.returncode is not None:
            return
        _signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.grace_period)
        except TimeoutError:
            logger.warning(
                f"Process did not exit {self.grace_period}s after SIGTERM, sending SIGKILL"
            )
            _signal_group(proc, signal.SIGKILL)
            await proc.wait()
