"""Task catalog reader for .vscode/tasks.json."""

import logging
from pathlib import Path
from typing import Any

from ..models import BuildTask, TaskKind
from .jsonc import read_jsonc

logger = logging.getLogger(__name__)

TASKS_FILE = Path(".vscode") / "tasks.json"


def _task_from_entry(entry: dict[str, Any]) -> BuildTask | None:
    label = entry.get("label")
    if not isinstance(label, str) or not label:
        return None

    task_type = entry.get("type")
    if task_type == "npm":
        kind = TaskKind.NPM
    elif task_type == "shell":
        kind = TaskKind.SHELL
    else:
        kind = TaskKind.PROCESS

    options = entry.get("options") or {}
    group = entry.get("group")
    if isinstance(group, dict):
        group = group.get("kind")

    return BuildTask(
        label=label,
        kind=kind,
        command=entry.get("command"),
        script=entry.get("script"),
        args=[str(arg) for arg in entry.get("args") or []],
        cwd=options.get("cwd"),
        env={str(k): str(v) for k, v in (options.get("env") or {}).items()},
        group=group if isinstance(group, str) else None,
    )


def list_tasks(project_root: Path) -> list[BuildTask]:
    """Return every task defined in the project's tasks.json.

    Missing or unparsable files yield an empty list.
    """
    data = read_jsonc(project_root / TASKS_FILE)
    if data is None:
        return []
    tasks: list[BuildTask] = []
    for entry in data.get("tasks") or []:
        if not isinstance(entry, dict):
            continue
        task = _task_from_entry(entry)
        if task is None:
            logger.debug(f"Skipping task without a label: {entry}")
            continue
        tasks.append(task)
    return tasks


def select_build_tasks(tasks: list[BuildTask]) -> list[BuildTask]:
    """Return tasks that look like build tasks by label or group."""
    return [task for task in tasks if task.is_build_task()]


def find_task(tasks: list[BuildTask], label: str) -> BuildTask | None:
    return next((task for task in tasks if task.label == label), None)
