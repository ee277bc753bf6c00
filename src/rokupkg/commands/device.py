"""Device command implementation."""

import asyncio
from typing import Annotated

import httpx
import typer
from rich.table import Table

from ..config import DeviceConfig
from ..constants import REACHABILITY_TIMEOUT
from ..errors import NetworkUnreachableError, RokuPkgError
from ..models import Device
from ..output import get_output_context
from ..services import DeviceClient
from .prompts import authorize_device, open_store


async def _fetch_device(ip: str) -> Device | None:
    async with DeviceClient() as api:
        return await api.fetch_device_info(ip, timeout=REACHABILITY_TIMEOUT, require_marker=False)


def device(
    ip: Annotated[
        str | None,
        typer.Option("--ip", help="IP address of the Roku device"),
    ] = None,
    password: Annotated[
        str | None,
        typer.Option("--password", "-p", help="Developer password"),
    ] = None,
    show: Annotated[
        bool,
        typer.Option("--show", help="Show the saved device and exit"),
    ] = False,
) -> None:
    """Configure or show the saved Roku device."""
    ctx = get_output_context()
    store = open_store(ctx)
    saved = store.get_device()

    if show:
        if not saved.ip:
            ctx.warning("No device configured. Run: roku-pkg discover --configure")
            raise typer.Exit(1)
        data = saved.model_dump(exclude={"password"})
        if ctx.json_mode:
            ctx.print_json({"device": data})
            return
        table = Table(title="Saved device", show_header=False)
        for key, value in data.items():
            if value is not None:
                table.add_row(key, str(value))
        table.add_row("password", "set" if saved.password else "not set")
        ctx.console.print(table)
        return

    if ip is None:
        ip = typer.prompt("Device IP address", default=saved.ip or None)

    try:
        found = asyncio.run(_fetch_device(ip))
    except httpx.HTTPError as e:
        ctx.report(NetworkUnreachableError(f"Cannot connect to device at {ip}: {e!r}"))
        raise typer.Exit(1) from None
    if found is None:
        ctx.report(NetworkUnreachableError(f"No Roku device answered at {ip}"))
        raise typer.Exit(1)

    try:
        authorized = authorize_device(ctx, found, password)
    except RokuPkgError as e:
        ctx.report(e)
        raise typer.Exit(1) from None

    store.set_device(DeviceConfig.from_authorized(authorized))
    ctx.success(
        f"Saved device {found.label}",
        {"device": found.model_dump(), "config": str(store.path)},
    )
