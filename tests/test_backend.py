"""Tests for the HTTP deployment backend."""

import zipfile
from pathlib import Path

import httpx
import pytest

from rokupkg.errors import (
    ArtifactMissingError,
    AuthenticationFailedError,
    NetworkUnreachableError,
    ValidationFailedError,
)
from rokupkg.models import AuthorizedDevice
from rokupkg.services.backend import HttpDeploymentBackend, result_message, zip_build_dir

INSTALL_OK = '<font color="red">Application Received: 2048 bytes stored.</font>'
PACKAGE_PAGE = (
    '<font color="red">Success.</font>'
    '<a href="pkgs//P1a2b3c.pkg">P1a2b3c.pkg</a>'
)


@pytest.mark.unit
class TestZipBuildDir:
    """Tests for zip_build_dir."""

    def test_zips_relative_paths(self, channel_dir: Path, tmp_path: Path) -> None:
        dest = zip_build_dir(channel_dir, tmp_path / "stage" / "app.zip")
        with zipfile.ZipFile(dest) as archive:
            assert sorted(archive.namelist()) == ["manifest", "source/main.brs"]

    def test_patterns_filter_files(self, channel_dir: Path, tmp_path: Path) -> None:
        (channel_dir / "notes.txt").write_text("skip me")
        dest = zip_build_dir(channel_dir, tmp_path / "app.zip", ["manifest", "source/**/*"])
        with zipfile.ZipFile(dest) as archive:
            assert "notes.txt" not in archive.namelist()

    def test_no_matching_files_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ArtifactMissingError):
            zip_build_dir(tmp_path, tmp_path / "app.zip")


@pytest.mark.unit
def test_result_message() -> None:
    assert result_message(INSTALL_OK) == "Application Received: 2048 bytes stored."
    assert result_message("<html></html>") is None


@pytest.mark.asyncio
@pytest.mark.unit
class TestHttpBackend:
    """Tests for HttpDeploymentBackend against a fake developer server."""

    async def test_deploy_and_sign_downloads_package(
        self, mock_client, authorized_device: AuthorizedDevice, channel_dir: Path, tmp_path: Path
    ) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/plugin_install":
                assert b'name="mysubmit"' in request.content
                assert b"Replace" in request.content
                return httpx.Response(200, text=INSTALL_OK)
            if request.url.path == "/plugin_package":
                assert b"signkey" in request.content
                return httpx.Response(200, text=PACKAGE_PAGE, headers={"content-type": "text/html"})
            if request.url.path == "/pkgs/P1a2b3c.pkg":
                return httpx.Response(200, content=b"PKGDATA")
            return httpx.Response(404)

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client, staging_dir=tmp_path / "staging")
        produced = await backend.deploy_and_sign(authorized_device, channel_dir, "signkey", "app")
        await client.aclose()

        assert paths == ["/plugin_install", "/plugin_package", "/pkgs/P1a2b3c.pkg"]
        assert produced == tmp_path / "staging" / "app.pkg"
        assert produced.read_bytes() == b"PKGDATA"
        # staging zip is cleaned up
        assert not (tmp_path / "staging" / "app.zip").exists()

    async def test_binary_package_written_directly(
        self, mock_client, authorized_device: AuthorizedDevice, channel_dir: Path, tmp_path: Path
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=b"\x00BINARY", headers={"content-type": "application/octet-stream"}
            )

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client, staging_dir=tmp_path)
        produced = await backend.create_package(authorized_device, channel_dir, "key", "app")
        await client.aclose()
        assert produced.read_bytes() == b"\x00BINARY"

    async def test_unwritable_staging_dir(
        self, mock_client, authorized_device: AuthorizedDevice, channel_dir: Path, tmp_path: Path
    ) -> None:
        """A staging path that is a regular file surfaces as ArtifactMissingError."""
        blocker = tmp_path / "staging"
        blocker.write_text("not a directory")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=b"\x00BINARY", headers={"content-type": "application/octet-stream"}
            )

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client, staging_dir=blocker)
        with pytest.raises(ArtifactMissingError, match="Could not save package"):
            await backend.create_package(authorized_device, channel_dir, "key", "app")
        await client.aclose()

    async def test_package_page_without_link(
        self, mock_client, authorized_device: AuthorizedDevice, channel_dir: Path, tmp_path: Path
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                text='<font color="red">Failed: invalid password</font>',
                headers={"content-type": "text/html"},
            )

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client, staging_dir=tmp_path)
        with pytest.raises(ArtifactMissingError, match="invalid password"):
            await backend.create_package(authorized_device, channel_dir, "key", "app")
        await client.aclose()

    async def test_install_failure_rejected(
        self, mock_client, authorized_device: AuthorizedDevice, channel_dir: Path, tmp_path: Path
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text='<font color="red">Install Failure: Compilation</font>')

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client, staging_dir=tmp_path)
        with pytest.raises(ValidationFailedError):
            await backend.deploy_and_sign(authorized_device, channel_dir, "key", "app")
        await client.aclose()

    async def test_unauthorized_maps_to_auth_error(
        self, mock_client, authorized_device: AuthorizedDevice, project
    ) -> None:
        client = mock_client(lambda request: httpx.Response(401))
        backend = HttpDeploymentBackend(client=client)
        with pytest.raises(AuthenticationFailedError):
            await backend.rekey(authorized_device, "key", project.sign_package_location)
        await client.aclose()

    async def test_connect_error_maps_to_network_error(
        self, mock_client, authorized_device: AuthorizedDevice, project
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client)
        with pytest.raises(NetworkUnreachableError):
            await backend.rekey(authorized_device, "key", project.sign_package_location)
        await client.aclose()

    @pytest.mark.parametrize(
        ("body", "fails"),
        [
            ('<font color="red">Success.</font>', False),
            ('<font color="red">Failed: bad password</font>', True),
            ("<html>Error while rekeying</html>", True),
            ("<html>ok</html>", False),
        ],
    )
    async def test_rekey_result(
        self, mock_client, authorized_device: AuthorizedDevice, project, body: str, fails: bool
    ) -> None:
        seen: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.content)
            return httpx.Response(200, text=body)

        client = mock_client(handler)
        backend = HttpDeploymentBackend(client=client)
        if fails:
            with pytest.raises(AuthenticationFailedError):
                await backend.rekey(authorized_device, "key", project.sign_package_location)
        else:
            await backend.rekey(authorized_device, "key", project.sign_package_location)
        await client.aclose()
        assert b"Rekey" in seen[0]

    async def test_rekey_missing_package(
        self, mock_client, authorized_device: AuthorizedDevice, tmp_path: Path
    ) -> None:
        client = mock_client(lambda request: httpx.Response(200))
        backend = HttpDeploymentBackend(client=client)
        with pytest.raises(ArtifactMissingError):
            await backend.rekey(authorized_device, "key", tmp_path / "missing.pkg")
        await client.aclose()
