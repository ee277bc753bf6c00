"""Project management commands: add, list, edit, remove."""

from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError
from rich.table import Table

from ..config import Project
from ..core.validation import validate_package_file
from ..output import get_output_context
from .prompts import open_store


def _validation_message(error: ValidationError) -> str:
    return "; ".join(str(item["msg"]) for item in error.errors())


def add(
    name: Annotated[str, typer.Argument(help="Project name (letters, digits, - and _)")],
    root_dir: Annotated[
        Path | None,
        typer.Option("--root-dir", "-r", help="Root directory of the channel source"),
    ] = None,
    sign_key: Annotated[
        str | None,
        typer.Option("--sign-key", "-k", help="Signing password for the developer key"),
    ] = None,
    sign_package: Annotated[
        Path | None,
        typer.Option("--sign-package", "-s", help="Previously signed reference package"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Where to write the signed .pkg"),
    ] = None,
) -> None:
    """Add a project to the config."""
    ctx = get_output_context()
    store = open_store(ctx)

    if store.get(name) is not None:
        ctx.error(f"Project '{name}' already exists")
        ctx.tips([f"Edit it with: roku-pkg edit {name}"])
        raise typer.Exit(1)

    if root_dir is None:
        root_dir = Path(typer.prompt("Project root directory", default=str(Path.cwd())))
    if sign_key is None:
        sign_key = typer.prompt("Signing key password", hide_input=True)
    if sign_package is None:
        sign_package = Path(typer.prompt("Signed reference package (.pkg)"))
    if output is None:
        output = Path(typer.prompt("Output package path", default=f"{name}.pkg"))

    root_dir = root_dir.expanduser().resolve()
    if not root_dir.is_dir():
        ctx.error(f"Root directory does not exist: {root_dir}")
        raise typer.Exit(1)
    sign_package = sign_package.expanduser().resolve()
    problem = validate_package_file(sign_package)
    if problem:
        ctx.warning(problem)

    try:
        project = Project(
            name=name,
            root_dir=root_dir,
            sign_key=sign_key,
            sign_package_location=sign_package,
            output_location=output.expanduser().resolve(),
        )
    except ValidationError as e:
        ctx.error(f"Invalid project: {_validation_message(e)}")
        raise typer.Exit(1) from None

    store.add(project)
    ctx.success(
        f"Added project {name}",
        {"project": project.model_dump(mode="json", exclude={"sign_key"})},
    )


def list_projects() -> None:
    """List saved projects."""
    ctx = get_output_context()
    projects = open_store(ctx).list()

    if ctx.json_mode:
        ctx.print_json(
            {"projects": [p.model_dump(mode="json", exclude={"sign_key"}) for p in projects]}
        )
        return

    if not projects:
        ctx.print("No projects configured. Add one with: roku-pkg add NAME")
        return

    table = Table(title="Projects")
    table.add_column("Name", style="bold")
    table.add_column("Root")
    table.add_column("Output")
    for project in projects:
        table.add_row(project.name, str(project.root_dir), str(project.output_location))
    ctx.console.print(table)


def edit(
    name: Annotated[str, typer.Argument(help="Project to edit")],
    new_name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Rename the project"),
    ] = None,
    root_dir: Annotated[
        Path | None,
        typer.Option("--root-dir", "-r", help="Root directory of the channel source"),
    ] = None,
    sign_key: Annotated[
        str | None,
        typer.Option("--sign-key", "-k", help="Signing password for the developer key"),
    ] = None,
    sign_package: Annotated[
        Path | None,
        typer.Option("--sign-package", "-s", help="Previously signed reference package"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Where to write the signed .pkg"),
    ] = None,
) -> None:
    """Change fields of a saved project."""
    ctx = get_output_context()
    store = open_store(ctx)

    if store.get(name) is None:
        ctx.error(f"Project '{name}' not found")
        raise typer.Exit(1)
    if new_name and new_name != name and store.get(new_name) is not None:
        ctx.error(f"Project '{new_name}' already exists")
        raise typer.Exit(1)

    changes: dict[str, Any] = {}
    if new_name:
        changes["name"] = new_name
    if root_dir is not None:
        changes["root_dir"] = root_dir.expanduser().resolve()
    if sign_key is not None:
        changes["sign_key"] = sign_key
    if sign_package is not None:
        changes["sign_package_location"] = sign_package.expanduser().resolve()
    if output is not None:
        changes["output_location"] = output.expanduser().resolve()

    if not changes:
        ctx.warning("Nothing to change")
        return

    try:
        project = store.update(name, **changes)
    except ValidationError as e:
        ctx.error(f"Invalid project: {_validation_message(e)}")
        raise typer.Exit(1) from None

    if project is not None:
        ctx.success(f"Updated project {project.name}", {"project": project.name})


def remove(
    name: Annotated[str, typer.Argument(help="Project to remove")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation"),
    ] = False,
) -> None:
    """Remove a project from the config."""
    ctx = get_output_context()
    store = open_store(ctx)

    if store.get(name) is None:
        ctx.error(f"Project '{name}' not found")
        raise typer.Exit(1)
    if not yes and not typer.confirm(f"Remove project {name}?"):
        raise typer.Exit(0)

    store.remove(name)
    ctx.success(f"Removed project {name}", {"project": name})
