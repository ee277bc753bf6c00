"""Deployment backend: sideloading, rekeying, and packaging on the device.

The orchestrator only depends on the DeploymentBackend protocol. The
HTTP implementation talks to the device's developer web server the same
way the browser-based installer does: multipart form posts under digest
authentication.
"""

import asyncio
import logging
import re
import tempfile
import time
import zipfile
from pathlib import Path
from typing import Protocol

import httpx

from ..constants import UPLOAD_TIMEOUT
from ..errors import (
    ArtifactMissingError,
    AuthenticationFailedError,
    NetworkUnreachableError,
    ValidationFailedError,
)
from ..models import AuthorizedDevice
from .device_api import dev_auth, dev_url

logger = logging.getLogger(__name__)

DEFAULT_FILES = ["**/*"]
RESULT_MESSAGE_PATTERN = re.compile(r'<font color="red">([^<]+)</font>', re.IGNORECASE)
PACKAGE_LINK_PATTERN = re.compile(r'<a href="pkgs/+([^"]+)">', re.IGNORECASE)


class DeploymentBackend(Protocol):
    """Operations the pipeline needs from the packaging service."""

    async def rekey(
        self, device: AuthorizedDevice, signing_password: str, signed_package: Path
    ) -> None: ...

    async def deploy_and_sign(
        self,
        device: AuthorizedDevice,
        build_dir: Path,
        signing_password: str,
        out_file: str,
        files: list[str] | None = None,
    ) -> Path: ...

    async def create_package(
        self,
        device: AuthorizedDevice,
        build_dir: Path,
        signing_password: str,
        out_file: str,
        files: list[str] | None = None,
    ) -> Path: ...


def zip_build_dir(build_dir: Path, dest: Path, patterns: list[str] | None = None) -> Path:
    """Zip files under build_dir matching the glob patterns.

    Returns:
        Path to the written zip

    Raises:
        ArtifactMissingError: If no files match or the zip cannot be written
    """
    matched: set[Path] = set()
    for pattern in patterns or DEFAULT_FILES:
        matched.update(p for p in build_dir.glob(pattern) if p.is_file())
    if not matched:
        raise ArtifactMissingError(f"No files to package in {build_dir}")

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in sorted(matched):
                archive.write(path, path.relative_to(build_dir).as_posix())
    except OSError as e:
        raise ArtifactMissingError(f"Could not write {dest}: {e}") from e
    logger.debug(f"Zipped {len(matched)} files from {build_dir} into {dest}")
    return dest


def result_message(body: str) -> str | None:
    """Extract the status message the developer server renders in red."""
    match = RESULT_MESSAGE_PATTERN.search(body)
    return match.group(1).strip() if match else None


class HttpDeploymentBackend:
    """DeploymentBackend over the device's developer web server.

    Args:
        client: Optional shared httpx client
        staging_dir: Where zips and downloaded packages are written
        timeout: Per-request timeout for uploads and downloads
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        staging_dir: Path | None = None,
        timeout: float = UPLOAD_TIMEOUT,
    ) -> None:
        self.client = client or httpx.AsyncClient()
        self.staging_dir = staging_dir or Path(tempfile.gettempdir()) / "roku-pkg"
        self.timeout = timeout

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post(
        self,
        device: AuthorizedDevice,
        path: str,
        data: dict[str, str],
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> httpx.Response:
        try:
            response = await self.client.post(
                dev_url(device.address, path),
                data=data,
                files=files,
                auth=dev_auth(device.password),
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            raise NetworkUnreachableError(f"Could not reach {device.address}: {e!r}") from e
        if response.status_code in (401, 403):
            raise AuthenticationFailedError("Authentication failed. Check your Roku password.")
        return response

    async def install(self, device: AuthorizedDevice, zip_path: Path) -> None:
        """Sideload a zipped channel, replacing any installed dev channel."""
        content = await asyncio.to_thread(zip_path.read_bytes)
        response = await self._post(
            device,
            "/plugin_install",
            data={"mysubmit": "Replace"},
            files={"archive": (zip_path.name, content, "application/zip")},
        )
        message = result_message(response.text) or ""
        if response.status_code != 200 or "Install Failure" in message:
            raise ValidationFailedError(
                f"Device rejected the install: {message or response.status_code}",
                remediation=["Check the manifest and source files for compile errors"],
            )
        logger.info(f"Installed {zip_path.name} on {device.address}")

    async def rekey(
        self, device: AuthorizedDevice, signing_password: str, signed_package: Path
    ) -> None:
        """Rekey the device with the developer ID from a signed package.

        Raises:
            ArtifactMissingError: If the package does not exist
            AuthenticationFailedError: If the device rejects the rekey
        """
        if not signed_package.is_file():
            raise ArtifactMissingError(f"Package file not found: {signed_package}")
        content = await asyncio.to_thread(signed_package.read_bytes)
        response = await self._post(
            device,
            "/plugin_inspect",
            data={"mysubmit": "Rekey", "passwd": signing_password},
            files={"archive": (signed_package.name, content, "application/octet-stream")},
        )
        message = result_message(response.text)
        if message is not None:
            failed = not message.startswith("Success")
        else:
            failed = response.status_code != 200 or any(
                word in response.text for word in ("Failed", "Error")
            )
        if failed:
            raise AuthenticationFailedError(f"Rekey operation failed: {message or 'unknown error'}")

    async def create_package(
        self,
        device: AuthorizedDevice,
        build_dir: Path,
        signing_password: str,
        out_file: str,
        files: list[str] | None = None,
    ) -> Path:
        """Sign the channel currently installed on the device.

        Returns:
            Path of the downloaded .pkg inside the staging directory
        """
        logger.debug(f"Packaging installed channel built from {build_dir}")
        response = await self._post(
            device,
            "/plugin_package",
            data={
                "mysubmit": "Package",
                "app_name": out_file,
                "passwd": signing_password,
                "pkg_time": str(int(time.time() * 1000)),
            },
        )
        if response.status_code != 200:
            raise ArtifactMissingError(f"Package request returned status {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if response.content and "html" not in content_type and "text" not in content_type:
            content = response.content
        else:
            content = await self._download_package(device, response.text)

        destination = self.staging_dir / f"{out_file}.pkg"
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(destination.write_bytes, content)
        except OSError as e:
            raise ArtifactMissingError(f"Could not save package to {destination}: {e}") from e
        return destination

    async def _download_package(self, device: AuthorizedDevice, body: str) -> bytes:
        match = PACKAGE_LINK_PATTERN.search(body)
        if match is None:
            message = result_message(body)
            raise ArtifactMissingError(
                f"Package failure: {message}"
                if message
                else "Package was created but could not be found"
            )
        try:
            response = await self.client.get(
                dev_url(device.address, f"/pkgs/{match.group(1)}"),
                auth=dev_auth(device.password),
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            raise NetworkUnreachableError(f"Could not download package: {e!r}") from e
        if response.status_code != 200 or not response.content:
            raise ArtifactMissingError(f"Package download returned status {response.status_code}")
        return response.content

    async def deploy_and_sign(
        self,
        device: AuthorizedDevice,
        build_dir: Path,
        signing_password: str,
        out_file: str,
        files: list[str] | None = None,
    ) -> Path:
        """Zip the build directory, sideload it, and sign the result."""
        zip_path = await asyncio.to_thread(
            zip_build_dir, build_dir, self.staging_dir / f"{out_file}.zip", files
        )
        try:
            await self.install(device, zip_path)
        finally:
            zip_path.unlink(missing_ok=True)
        return await self.create_package(device, build_dir, signing_password, out_file, files)
