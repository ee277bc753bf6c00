"""Network discovery of Roku devices.

Two independent strategies run concurrently:

- multicast: one SSDP M-SEARCH datagram, replies collected for a fixed
  window, each reply's LOCATION dereferenced for a device-info document;
- subnet: every host .1-.254 on a set of /24 prefixes is probed for the
  device-info endpoint, in bounded chunks.

Results are merged by address. Per-device failures are dropped; only a
failure to open the multicast socket is reported as an error.
"""

import asyncio
import ipaddress
import logging
import re
import socket
from collections.abc import Iterable
from urllib.parse import urlparse

import httpx
import psutil

from ..constants import (
    COMMON_PREFIXES,
    DISCOVERY_WINDOW,
    LOCATION_FETCH_TIMEOUT,
    SSDP_MULTICAST_IP,
    SSDP_PORT,
    SSDP_SEARCH_TARGET,
    SUBNET_CHUNK_SIZE,
    SUBNET_PROBE_TIMEOUT,
)
from ..errors import DiscoveryError
from ..models import Device
from .device_api import DeviceClient

logger = logging.getLogger(__name__)

LOCATION_PATTERN = re.compile(r"^LOCATION:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


def build_search_message(search_target: str = SSDP_SEARCH_TARGET) -> bytes:
    """Build the SSDP M-SEARCH request datagram."""
    lines = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {SSDP_MULTICAST_IP}:{SSDP_PORT}",
        'MAN: "ssdp:discover"',
        "MX: 3",
        f"ST: {search_target}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode()


def parse_ssdp_location(payload: str, search_target: str = SSDP_SEARCH_TARGET) -> str | None:
    """Extract the LOCATION URL from an SSDP reply advertising search_target."""
    if search_target not in payload:
        return None
    match = LOCATION_PATTERN.search(payload)
    if not match:
        return None
    return match.group(1).strip()


def merge_devices(multicast: Iterable[Device], subnet: Iterable[Device]) -> list[Device]:
    """Merge two discovery result sets keyed by address.

    Subnet fields that are set override the multicast record's fields; fields
    the subnet record leaves unset keep their multicast value.

    Returns:
        Devices sorted by name (case-sensitive)
    """
    merged: dict[str, Device] = {device.address: device for device in multicast}
    for device in subnet:
        existing = merged.get(device.address)
        if existing is None:
            merged[device.address] = device
        else:
            merged[device.address] = existing.model_copy(
                update=device.model_dump(exclude_none=True)
            )
    return sorted(merged.values(), key=lambda d: d.name)


def local_prefixes() -> list[str]:
    """Return the /24 prefixes of this machine's non-loopback IPv4 addresses."""
    prefixes: list[str] = []
    try:
        interfaces = psutil.net_if_addrs()
    except OSError as e:
        logger.debug(f"Could not enumerate network interfaces: {e}")
        return prefixes
    for addrs in interfaces.values():
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if ip.is_loopback or ip.is_link_local:
                continue
            prefix = addr.address.rsplit(".", 1)[0]
            if prefix not in prefixes:
                prefixes.append(prefix)
    return prefixes


def candidate_prefixes(own: list[str] | None = None) -> list[str]:
    """Common private prefixes with this machine's own prefixes placed first."""
    own = local_prefixes() if own is None else own
    ranges = list(COMMON_PREFIXES)
    for prefix in reversed(own):
        if prefix in ranges:
            continue
        ranges.insert(0, prefix)
    return ranges


class _SsdpProtocol(asyncio.DatagramProtocol):
    """Collects SSDP replies into a queue."""

    def __init__(self, replies: asyncio.Queue[tuple[str, str]]) -> None:
        self.replies = replies

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.replies.put_nowait((data.decode("utf-8", errors="replace"), addr[0]))

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"SSDP socket error: {exc}")


class NetworkDiscoveryService:
    """Finds Roku devices on the local network.

    Args:
        client: Optional shared httpx client (injected in tests)
        prefixes: /24 prefixes for the subnet probe; defaults to candidate_prefixes()
        window: Seconds to listen for SSDP replies
        chunk_size: Maximum concurrent subnet requests
        multicast: Disable to run only the subnet probe
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        prefixes: list[str] | None = None,
        window: float = DISCOVERY_WINDOW,
        chunk_size: int = SUBNET_CHUNK_SIZE,
        multicast: bool = True,
        search_target: str = SSDP_SEARCH_TARGET,
    ) -> None:
        self._client = client
        self.prefixes = prefixes
        self.window = window
        self.chunk_size = chunk_size
        self.multicast_enabled = multicast
        self.search_target = search_target

    async def discover(self) -> list[Device]:
        """Run both strategies concurrently and merge their results.

        Raises:
            DiscoveryError: If the multicast socket cannot be opened
        """
        async with DeviceClient(self._client) as api:
            multicast = self.multicast_probe(api) if self.multicast_enabled else _empty()
            multicast_result, subnet_result = await asyncio.gather(
                multicast, self.subnet_probe(api), return_exceptions=True
            )

        systemic: DiscoveryError | None = None
        results: list[list[Device]] = []
        for name, result in (("multicast", multicast_result), ("subnet", subnet_result)):
            if isinstance(result, DiscoveryError):
                systemic = result
                results.append([])
            elif isinstance(result, BaseException):
                logger.debug(f"{name} discovery failed: {result!r}")
                results.append([])
            else:
                logger.debug(f"{name} discovery found {len(result)} device(s)")
                results.append(result)

        if systemic is not None:
            raise systemic
        return merge_devices(results[0], results[1])

    async def multicast_probe(self, api: DeviceClient) -> list[Device]:
        """Send one SSDP search and resolve every reply received in the window."""
        loop = asyncio.get_running_loop()
        replies: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SsdpProtocol(replies),
                local_addr=("0.0.0.0", 0),
                family=socket.AF_INET,
                allow_broadcast=True,
            )
        except OSError as e:
            raise DiscoveryError(f"Could not open discovery socket: {e}") from e

        lookups: list[asyncio.Task[Device | None]] = []
        seen: set[str] = set()
        try:
            try:
                transport.sendto(
                    build_search_message(self.search_target), (SSDP_MULTICAST_IP, SSDP_PORT)
                )
            except OSError as e:
                logger.debug(f"SSDP search could not be sent: {e}")
                return []

            deadline = loop.time() + self.window
            while (remaining := deadline - loop.time()) > 0:
                try:
                    payload, sender = await asyncio.wait_for(replies.get(), timeout=remaining)
                except TimeoutError:
                    break
                location = parse_ssdp_location(payload, self.search_target)
                if location is None or location in seen:
                    continue
                seen.add(location)
                logger.debug(f"SSDP reply from {sender}: {location}")
                lookups.append(asyncio.create_task(self._resolve_location(api, location)))
        finally:
            transport.close()

        found = await asyncio.gather(*lookups, return_exceptions=True)
        return [device for device in found if isinstance(device, Device)]

    async def _resolve_location(self, api: DeviceClient, location: str) -> Device | None:
        host = urlparse(location).hostname
        if not host:
            return None
        try:
            return await api.fetch_device_info(
                host, timeout=LOCATION_FETCH_TIMEOUT, require_marker=False
            )
        except httpx.HTTPError as e:
            logger.debug(f"Device info lookup failed for {location}: {e!r}")
            return None

    async def subnet_probe(self, api: DeviceClient) -> list[Device]:
        """Probe every host on each candidate prefix, chunk_size at a time."""
        prefixes = self.prefixes if self.prefixes is not None else candidate_prefixes()
        addresses = [f"{prefix}.{host}" for prefix in prefixes for host in range(1, 255)]
        logger.debug(f"Probing {len(addresses)} addresses across {len(prefixes)} prefixes")

        devices: list[Device] = []
        for start in range(0, len(addresses), self.chunk_size):
            chunk = addresses[start : start + self.chunk_size]
            results = await asyncio.gather(
                *(self._probe_address(api, address) for address in chunk),
                return_exceptions=True,
            )
            devices.extend(r for r in results if isinstance(r, Device))
        return devices

    async def _probe_address(self, api: DeviceClient, address: str) -> Device | None:
        try:
            return await api.fetch_device_info(address, timeout=SUBNET_PROBE_TIMEOUT)
        except httpx.HTTPError:
            return None


async def _empty() -> list[Device]:
    return []
