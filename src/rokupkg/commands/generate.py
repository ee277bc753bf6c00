"""Generate command implementation."""

import asyncio
import sys
from typing import Annotated

import typer
from rich.panel import Panel

from ..config import Project, ProjectStore, TimeoutsConfig
from ..core import (
    BuildAction,
    DecisionProvider,
    DeploymentOrchestrator,
    GenerateOptions,
    ProgrammaticDecisions,
)
from ..errors import RokuPkgError
from ..models import AuthorizedDevice, DeploymentResult, StageStatus
from ..output import OutputContext, get_output_context
from ..services import HttpDeploymentBackend
from .prompts import InteractiveDecisions, discover_and_configure, open_store, select_entry


def create_orchestrator(
    device: AuthorizedDevice,
    project: Project,
    decisions: DecisionProvider,
    timeouts: TimeoutsConfig,
) -> DeploymentOrchestrator:
    """Build an orchestrator wired to the HTTP backend."""
    return DeploymentOrchestrator(
        device,
        project,
        HttpDeploymentBackend(),
        decisions,
        timeouts=timeouts,
    )


async def _run(
    orchestrator: DeploymentOrchestrator, options: GenerateOptions
) -> DeploymentResult:
    try:
        return await orchestrator.run(options)
    finally:
        backend = orchestrator.backend
        if isinstance(backend, HttpDeploymentBackend):
            await backend.aclose()


def _resolve_device(
    ctx: OutputContext,
    store: ProjectStore,
    discover: bool,
    first_device: bool,
    password: str | None,
) -> AuthorizedDevice:
    saved = store.get_device()
    if saved.is_configured() and not discover:
        return saved.to_authorized()

    if not discover:
        ctx.warning("No device configured, searching the network...")
    try:
        authorized = discover_and_configure(ctx, store, first_device, password)
    except RokuPkgError as e:
        ctx.report(e)
        raise typer.Exit(1) from None
    if authorized is None:
        ctx.tips(["Configure the device by IP with: roku-pkg device --ip <address>"])
        raise typer.Exit(1)
    return authorized


def _resolve_project(ctx: OutputContext, store: ProjectStore, name: str | None) -> Project:
    if name is not None:
        project = store.get(name)
        if project is None:
            ctx.error(f"Project '{name}' not found")
            available = ", ".join(p.name for p in store.list()) or "none"
            ctx.tips([f"Available projects: {available}"])
            raise typer.Exit(1)
        return project

    projects = store.list()
    if not projects:
        ctx.error("No projects configured")
        ctx.tips(["Add one with: roku-pkg add NAME"])
        raise typer.Exit(1)
    if len(projects) == 1:
        return projects[0]
    if not sys.stdin.isatty():
        ctx.error("Multiple projects configured; pass the project name")
        raise typer.Exit(1)

    index = select_entry([p.name for p in projects], "Select a project")
    if index is None:
        raise typer.Exit(1)
    return projects[index]


def _print_result(ctx: OutputContext, result: DeploymentResult) -> None:
    warnings = [s for s in result.stages if s.status == StageStatus.WARNING]
    if ctx.json_mode:
        ctx.print_json(result.model_dump(mode="json"))
        return

    lines = [
        f"[bold]Project:[/bold] {result.project}",
        f"[bold]Package:[/bold] {result.artifact_path}",
        f"[bold]Size:[/bold] {result.size_kb} KB",
    ]
    if result.used_fallback:
        lines.append("[yellow]Created with package-only fallback[/yellow]")
    ctx.console.print(Panel("\n".join(lines), title="Package generated", style="green"))
    for stage in warnings:
        ctx.warning(f"{stage.stage.value}: {stage.message}")


def generate(
    project_name: Annotated[
        str | None,
        typer.Argument(metavar="PROJECT", help="Project to package"),
    ] = None,
    skip_build: Annotated[
        bool,
        typer.Option("--skip-build", help="Skip the build task"),
    ] = False,
    skip_rekey: Annotated[
        bool,
        typer.Option("--skip-rekey", help="Assume the device already has the right key"),
    ] = False,
    package_only: Annotated[
        bool,
        typer.Option("--package-only", help="Package the app already deployed on the device"),
    ] = False,
    build_task: Annotated[
        str | None,
        typer.Option("--build-task", "-t", help="Label of the build task to run"),
    ] = None,
    use_existing_build: Annotated[
        bool,
        typer.Option("--use-existing-build", help="Use the existing build output"),
    ] = False,
    discover: Annotated[
        bool,
        typer.Option("--discover", "-d", help="Discover and select a device first"),
    ] = False,
    first_device: Annotated[
        bool,
        typer.Option("--first-device", help="Pick the first discovered device"),
    ] = False,
    password: Annotated[
        str | None,
        typer.Option("--password", "-p", help="Developer password for a discovered device"),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Answer prompts automatically"),
    ] = False,
) -> None:
    """Build, deploy, and sign a project into a .pkg file."""
    ctx = get_output_context()

    if build_task and (skip_build or use_existing_build):
        ctx.error("--build-task cannot be combined with --skip-build or --use-existing-build")
        raise typer.Exit(1)

    store = open_store(ctx)
    project = _resolve_project(ctx, store, project_name)
    device = _resolve_device(ctx, store, discover, first_device, password)

    decisions: DecisionProvider
    if yes or not sys.stdin.isatty():
        decisions = ProgrammaticDecisions(
            build_label=build_task,
            build_action=BuildAction.RUN,
            accept_fallback=yes,
        )
    else:
        decisions = InteractiveDecisions()

    options = GenerateOptions(
        skip_build=skip_build,
        skip_rekey=skip_rekey,
        package_only=package_only,
        build_task=build_task,
        use_existing_build=use_existing_build,
    )
    ctx.print(f"[bold]Generating package for {project.name} on {device.device.label}[/bold]")
    orchestrator = create_orchestrator(device, project, decisions, store.config.timeouts)

    try:
        result = asyncio.run(_run(orchestrator, options))
    except RokuPkgError as e:
        ctx.report(e)
        raise typer.Exit(1) from None

    _print_result(ctx, result)
