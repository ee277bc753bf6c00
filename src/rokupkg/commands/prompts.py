"""Interactive prompts and helpers shared by the CLI commands."""

import asyncio
import tomllib

import typer
from pydantic import ValidationError
from simple_term_menu import TerminalMenu

from ..config import DeviceConfig, ProjectStore
from ..core.decisions import BuildAction, BuildChoice
from ..models import AuthorizedDevice, BuildTask, Device
from ..output import OutputContext
from ..services import DeviceAuthenticator, NetworkDiscoveryService

USE_EXISTING_ENTRY = "Use existing build"
SHOW_ALL_ENTRY = "Show all tasks..."
SKIP_ENTRY = "Skip build"


def open_store(ctx: OutputContext) -> ProjectStore:
    """Load the project store, exiting with an error if the file is invalid."""
    try:
        return ProjectStore()
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        ctx.error(f"Invalid config file: {e}")
        raise typer.Exit(1) from None


def select_entry(entries: list[str], title: str) -> int | None:
    """Show a menu and return the selected index, or None on escape."""
    menu = TerminalMenu(entries, title=title, clear_screen=False, cycle_cursor=True)
    selection = menu.show()
    return selection if isinstance(selection, int) else None


class InteractiveDecisions:
    """DecisionProvider that asks the user at the terminal."""

    def choose_build(
        self,
        build_tasks: list[BuildTask],
        all_tasks: list[BuildTask],
        build_exists: bool,
    ) -> BuildChoice:
        tasks = build_tasks or all_tasks
        showing_all = not build_tasks
        while True:
            entries = [task.label for task in tasks]
            if build_exists:
                entries.append(USE_EXISTING_ENTRY)
            if not showing_all and len(all_tasks) > len(build_tasks):
                entries.append(SHOW_ALL_ENTRY)
            entries.append(SKIP_ENTRY)

            index = select_entry(entries, "Select a build task")
            if index is None:
                return BuildChoice(BuildAction.SKIP)
            if index < len(tasks):
                return BuildChoice(BuildAction.RUN, tasks[index])

            entry = entries[index]
            if entry == USE_EXISTING_ENTRY:
                return BuildChoice(BuildAction.USE_EXISTING)
            if entry == SHOW_ALL_ENTRY:
                tasks = all_tasks
                showing_all = True
                continue
            return BuildChoice(BuildAction.SKIP)

    def confirm_package_only_fallback(self) -> bool:
        """Ask before packaging whatever app the device currently has installed.

        The answer defaults to no: the installed app may predate this build, so
        the fallback only runs when the user explicitly agrees.
        """
        return typer.confirm(
            "Deployment timed out. Create the package from the app already on the device "
            "(it may be an older build)?",
            default=False,
        )


def discover_devices(ctx: OutputContext) -> list[Device]:
    """Run network discovery with a status spinner.

    Raises:
        DiscoveryError: If discovery cannot run at all
    """
    with ctx.console.status("Searching for Roku devices on the network..."):
        return asyncio.run(NetworkDiscoveryService().discover())


def pick_device(devices: list[Device], first_device: bool) -> Device | None:
    """Choose a device from the list, prompting when there is more than one."""
    if not devices:
        return None
    if first_device or len(devices) == 1:
        return devices[0]
    index = select_entry([device.label for device in devices], "Select your Roku device")
    return devices[index] if index is not None else None


def authorize_device(
    ctx: OutputContext, device: Device, password: str | None
) -> AuthorizedDevice:
    """Prompt for a password if needed and verify it against the device.

    Raises:
        RokuPkgError: If the device is unreachable or rejects the password
    """
    if password is None:
        password = typer.prompt(f"Developer password for {device.name}", hide_input=True)
    ctx.print(f"Testing connection to {device.name}...")
    return asyncio.run(DeviceAuthenticator().authorize(device, password))


def discover_and_configure(
    ctx: OutputContext,
    store: ProjectStore,
    first_device: bool = False,
    password: str | None = None,
) -> AuthorizedDevice | None:
    """Discover devices, select one, authorize it, and save it to the store.

    Returns:
        The saved device, or None if nothing was found or selected

    Raises:
        RokuPkgError: On discovery or authorization failure
    """
    devices = discover_devices(ctx)
    if not devices:
        ctx.warning("No Roku devices found on the network")
        return None
    device = pick_device(devices, first_device)
    if device is None:
        ctx.warning("No device selected")
        return None

    authorized = authorize_device(ctx, device, password)
    store.set_device(DeviceConfig.from_authorized(authorized))
    ctx.success(f"Saved device {device.label}")
    return authorized
