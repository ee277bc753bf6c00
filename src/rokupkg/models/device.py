"""Device models.

A Device is produced by a discovery run and never persisted by the
pipeline itself. An AuthorizedDevice pairs it with the developer
password once both reachability and credentials have been verified.
"""

from pydantic import BaseModel, Field


class Device(BaseModel):
    """A Roku device found on the local network.

    Attributes:
        address: IPv4 address of the device.
        name: Friendly name, or a synthesized ``device-<address>``.
        model_name: Model name or number reported by the device.
        serial_number: Serial number reported by the device.
        software_version: Firmware version, if reported.
        device_type: Device class tag (e.g. "TV"), if reported.
    """

    address: str = Field(description="IPv4 address")
    name: str = Field(description="Friendly device name")
    model_name: str = Field(default="Unknown", description="Model name or number")
    serial_number: str = Field(default="Unknown", description="Serial number")
    software_version: str | None = Field(default=None, description="Firmware version")
    device_type: str | None = Field(default=None, description="Device class tag")

    @property
    def label(self) -> str:
        """Human-readable one-line description."""
        return f"{self.name} ({self.address}) - {self.model_name}"


class AuthorizedDevice(BaseModel):
    """A device plus a developer password known to be accepted."""

    device: Device
    password: str = Field(repr=False)

    @property
    def address(self) -> str:
        return self.device.address
