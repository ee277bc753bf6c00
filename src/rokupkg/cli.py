"""roku-pkg CLI: build, deploy, and sign Roku channel packages."""

from pathlib import Path

import typer

from . import __version__
from .commands import add, device, discover, edit, generate, list_projects, remove
from .config import set_config_path
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"roku-pkg {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="roku-pkg",
    help="Build, deploy, and sign Roku channel packages",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging, including HTTP traffic",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Path to config.toml (default: ~/.config/roku-pkg/config.toml)",
        envvar="ROKU_PKG_CONFIG",
    ),
) -> None:
    """roku-pkg - Roku channel packaging tool."""
    console = configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
        debug=debug,
    )
    set_output_context(OutputContext(console=console, json_mode=json_output))
    set_config_path(config.expanduser() if config else None)


app.command()(discover)
app.command()(device)
app.command()(add)
app.command("list")(list_projects)
app.command()(edit)
app.command()(remove)
app.command()(generate)


if __name__ == "__main__":
    app()
