"""HTTP access to a Roku device's control and developer endpoints.

Two servers are involved: the External Control Protocol (ECP) server on
port 8060, which is unauthenticated and answers device-info queries and
keypresses, and the developer web server on port 80, which requires
digest authentication as user ``rokudev``.
"""

import logging
import xml.etree.ElementTree as ET
from types import TracebackType

import httpx

from ..constants import (
    CREDENTIAL_TIMEOUT,
    DEV_USERNAME,
    DEVICE_INFO_PATH,
    ECP_PORT,
    HOME_KEYPRESS_PATH,
    HOME_TIMEOUT,
)
from ..models import Device

logger = logging.getLogger(__name__)

DEVICE_INFO_MARKER = "<device-info>"


def ecp_url(address: str, path: str) -> str:
    """Build a URL on the device's ECP server."""
    return f"http://{address}:{ECP_PORT}{path}"


def dev_url(address: str, path: str) -> str:
    """Build a URL on the device's developer web server."""
    return f"http://{address}{path}"


def dev_auth(password: str) -> httpx.DigestAuth:
    return httpx.DigestAuth(DEV_USERNAME, password)


def parse_device_info(address: str, xml_data: str) -> Device | None:
    """Parse a device-info XML document.

    Args:
        address: IP address the document was fetched from
        xml_data: Raw response body

    Returns:
        Parsed Device, or None if the document is malformed
    """
    try:
        root = ET.fromstring(xml_data.strip())
    except ET.ParseError:
        return None
    if root.tag != "device-info":
        return None

    def value(tag: str) -> str:
        return (root.findtext(tag) or "").strip()

    return Device(
        address=address,
        name=value("friendly-device-name") or value("user-device-name") or f"device-{address}",
        model_name=value("model-name") or value("model-number") or "Unknown",
        serial_number=value("serial-number") or "Unknown",
        software_version=value("software-version") or None,
        device_type=value("device-type") or None,
    )


class DeviceClient:
    """Thin async wrapper over the device endpoints.

    Owns its httpx client unless one is injected, in which case the caller
    is responsible for closing it.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()

    async def __aenter__(self) -> "DeviceClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch_device_info(
        self, address: str, timeout: float, require_marker: bool = True
    ) -> Device | None:
        """Fetch and parse the device-info document.

        Raises:
            httpx.HTTPError: On connection failure or timeout
        """
        response = await self.client.get(ecp_url(address, DEVICE_INFO_PATH), timeout=timeout)
        if response.status_code != 200:
            return None
        if require_marker and DEVICE_INFO_MARKER not in response.text:
            return None
        return parse_device_info(address, response.text)

    async def get_device_info_status(self, address: str, timeout: float) -> int:
        """Return the status code of a device-info query.

        Raises:
            httpx.HTTPError: On connection failure or timeout
        """
        response = await self.client.get(ecp_url(address, DEVICE_INFO_PATH), timeout=timeout)
        return response.status_code

    async def press_home(self, address: str, timeout: float = HOME_TIMEOUT) -> int:
        """Send the Home keypress. Returns the HTTP status code.

        Raises:
            httpx.HTTPError: On connection failure or timeout
        """
        response = await self.client.post(ecp_url(address, HOME_KEYPRESS_PATH), timeout=timeout)
        logger.debug(f"Home keypress on {address} returned {response.status_code}")
        return response.status_code

    async def get_dev_status(
        self, address: str, password: str, timeout: float = CREDENTIAL_TIMEOUT
    ) -> int:
        """Make an authenticated request to the developer web server.

        Raises:
            httpx.HTTPError: On connection failure or timeout
        """
        response = await self.client.get(
            dev_url(address, "/plugin_install"),
            auth=dev_auth(password),
            timeout=timeout,
        )
        return response.status_code
