"""Discover command implementation."""

from typing import Annotated

import typer

from ..errors import RokuPkgError
from ..output import get_output_context
from .prompts import discover_and_configure, discover_devices, open_store


def discover(
    configure: Annotated[
        bool,
        typer.Option("--configure", "-c", help="Select a device and save it to the config"),
    ] = False,
    first_device: Annotated[
        bool,
        typer.Option("--first-device", help="Pick the first device without prompting"),
    ] = False,
    password: Annotated[
        str | None,
        typer.Option("--password", "-p", help="Developer password for the selected device"),
    ] = None,
) -> None:
    """Find Roku devices on the local network."""
    ctx = get_output_context()

    if first_device and not configure:
        ctx.error("--first-device can only be used with --configure")
        raise typer.Exit(1)

    try:
        if configure:
            store = open_store(ctx)
            authorized = discover_and_configure(ctx, store, first_device, password)
            if authorized is None:
                raise typer.Exit(1)
            ctx.result(
                {"device": authorized.device.model_dump(), "config": str(store.path)},
            )
            return

        devices = discover_devices(ctx)
    except RokuPkgError as e:
        ctx.report(e)
        raise typer.Exit(1) from None

    if ctx.json_mode:
        ctx.print_json({"devices": [device.model_dump() for device in devices]})
        return

    if not devices:
        ctx.warning("No Roku devices found on the network")
        ctx.tips(
            [
                "Make sure your Roku device is on the same network",
                "Check that developer mode is enabled on your Roku",
                "Configure the device by IP with: roku-pkg device --ip <address>",
            ]
        )
        return

    ctx.console.print(f"\n[bold]Found {len(devices)} Roku device(s):[/bold]")
    for device in devices:
        version = f", {device.software_version}" if device.software_version else ""
        ctx.console.print(f"  {device.label}{version}")
    ctx.console.print("\nSave one with: roku-pkg discover --configure")
