"""Shared test fixtures for roku-pkg tests."""

import io
from collections.abc import Callable, Generator
from pathlib import Path

import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

from rokupkg import config as config_module
from rokupkg import output as output_module
from rokupkg.config import Project
from rokupkg.models import AuthorizedDevice, Device
from rokupkg.output import OutputContext

DEVICE_INFO_XML = """<?xml version="1.0" encoding="UTF-8" ?>
<device-info>
    <serial-number>X00400ABCDEF</serial-number>
    <device-type>Stick</device-type>
    <model-name>Roku Streaming Stick 4K</model-name>
    <friendly-device-name>Living Room</friendly-device-name>
    <software-version>12.5.0</software-version>
</device-info>
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Point the config file at a temporary path and reset global CLI state."""
    path = tmp_path / "config" / "config.toml"
    monkeypatch.setenv(config_module.CONFIG_ENV_VAR, str(path))
    yield path
    config_module.set_config_path(None)
    output_module.set_output_context(None)


@pytest.fixture
def device_info_xml() -> str:
    return DEVICE_INFO_XML


@pytest.fixture
def output_buffer() -> tuple[OutputContext, io.StringIO]:
    """OutputContext writing to an in-memory buffer."""
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=200)
    return OutputContext(console=console), buffer


@pytest.fixture
def device() -> Device:
    return Device(address="192.168.1.50", name="Living Room", model_name="Roku Ultra")


@pytest.fixture
def authorized_device(device: Device) -> AuthorizedDevice:
    return AuthorizedDevice(device=device, password="secret")


@pytest.fixture
def channel_dir(tmp_path: Path) -> Path:
    """A project root holding a valid channel layout."""
    root = tmp_path / "channel"
    (root / "source").mkdir(parents=True)
    (root / "manifest").write_text("title=Test Channel\n")
    (root / "source" / "main.brs").write_text("sub Main()\nend sub\n")
    return root


@pytest.fixture
def project(tmp_path: Path, channel_dir: Path) -> Project:
    """Project with an existing signed package and an output path under tmp_path."""
    signed = tmp_path / "signed" / "reference.pkg"
    signed.parent.mkdir()
    signed.write_bytes(b"PKG" * 100)
    return Project(
        name="test-channel",
        root_dir=channel_dir,
        sign_key="signkey",
        sign_package_location=signed,
        output_location=tmp_path / "out" / "test-channel.pkg",
    )


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory for httpx clients backed by a request handler."""

    def make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return make
