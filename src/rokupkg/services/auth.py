"""Reachability and credential checks for a single device."""

import logging

import httpx

from ..constants import CREDENTIAL_TIMEOUT, REACHABILITY_TIMEOUT
from ..errors import AuthenticationFailedError, NetworkUnreachableError
from ..models import AuthorizedDevice, Device
from .device_api import DeviceClient

logger = logging.getLogger(__name__)


class DeviceAuthenticator:
    """Verifies that a device answers and accepts a developer password.

    Reachability and credentials are separate checks: a device can answer
    ECP queries while rejecting the password on its developer server.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def test_reachable(self, device: Device) -> bool:
        """Return True if the device-info endpoint answers 200. Never raises."""
        async with DeviceClient(self._client) as api:
            try:
                status = await api.get_device_info_status(
                    device.address, timeout=REACHABILITY_TIMEOUT
                )
            except httpx.HTTPError as e:
                logger.debug(f"{device.address} unreachable: {e!r}")
                return False
        return status == 200

    async def test_credential(self, address: str, secret: str) -> bool:
        """Return True if the developer server accepts the password. Never raises."""
        async with DeviceClient(self._client) as api:
            try:
                status = await api.get_dev_status(address, secret, timeout=CREDENTIAL_TIMEOUT)
            except httpx.HTTPError as e:
                logger.debug(f"Credential probe against {address} failed: {e!r}")
                return False
        if status in (401, 403):
            logger.debug(f"{address} rejected credentials with {status}")
            return False
        return 200 <= status < 300

    async def authorize(self, device: Device, secret: str) -> AuthorizedDevice:
        """Check reachability and credentials, returning an AuthorizedDevice.

        Raises:
            NetworkUnreachableError: If the device does not answer
            AuthenticationFailedError: If the password is rejected
        """
        if not await self.test_reachable(device):
            raise NetworkUnreachableError(f"Cannot connect to {device.name} ({device.address})")
        if not await self.test_credential(device.address, secret):
            raise AuthenticationFailedError(
                f"Unable to authenticate with {device.name}. Please check your password."
            )
        return AuthorizedDevice(device=device, password=secret)
