"""Error taxonomy for roku-pkg.

Every fatal pipeline failure is raised as a RokuPkgError subclass. Each
subclass carries a kind and default remediation tips so the CLI can print
guidance without inspecting message text.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TaskOutcome


class ErrorKind(str, Enum):
    """Categories of fatal failures."""

    NETWORK_UNREACHABLE = "network_unreachable"
    AUTHENTICATION_FAILED = "authentication_failed"
    VALIDATION_FAILED = "validation_failed"
    TASK_EXECUTION_FAILED = "task_execution_failed"
    TRANSFER_TIMED_OUT = "transfer_timed_out"
    ARTIFACT_MISSING = "artifact_missing"
    DISCOVERY_FAILED = "discovery_failed"


class RokuPkgError(Exception):
    """Base exception for roku-pkg failures."""

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED
    default_remediation: tuple[str, ...] = ()

    def __init__(self, message: str, remediation: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.remediation: list[str] = (
            list(remediation) if remediation is not None else list(self.default_remediation)
        )

    def add_remediation(self, tips: list[str]) -> None:
        """Append tips that are not already present."""
        for tip in tips:
            if tip not in self.remediation:
                self.remediation.append(tip)

    def to_dict(self) -> dict[str, object]:
        """Serialize for JSON output."""
        return {"kind": self.kind.value, "message": self.message, "remediation": self.remediation}


class NetworkUnreachableError(RokuPkgError):
    """Connection refused or timed out against a device endpoint."""

    kind = ErrorKind.NETWORK_UNREACHABLE
    default_remediation = (
        "Make sure your Roku device is on the same network",
        "Check that developer mode is enabled on your Roku",
        "Verify the IP address is correct",
    )


class AuthenticationFailedError(RokuPkgError):
    """The device rejected the supplied credentials."""

    kind = ErrorKind.AUTHENTICATION_FAILED
    default_remediation = (
        "Check your Roku developer password",
        "Update device settings with: roku-pkg device",
    )


class ValidationFailedError(RokuPkgError):
    """Structural project defects, reported all at once."""

    kind = ErrorKind.VALIDATION_FAILED
    default_remediation = ("Make sure your project is built before running this command",)

    def __init__(
        self,
        message: str,
        problems: list[str] | None = None,
        remediation: list[str] | None = None,
    ) -> None:
        super().__init__(message, remediation)
        self.problems = problems or []

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["problems"] = self.problems
        return data


class TaskExecutionFailedError(RokuPkgError):
    """A build task exited non-zero, was killed, or timed out."""

    kind = ErrorKind.TASK_EXECUTION_FAILED
    default_remediation = (
        "Try running the build manually first: cd to the project and run the build command",
        "Once built, you can use the --skip-build option",
    )

    def __init__(
        self,
        message: str,
        outcome: "TaskOutcome | None" = None,
        remediation: list[str] | None = None,
    ) -> None:
        super().__init__(message, remediation)
        self.outcome = outcome


class TransferTimedOutError(RokuPkgError):
    """Deploy-and-sign lost its race against the deployment timer."""

    kind = ErrorKind.TRANSFER_TIMED_OUT
    default_remediation = (
        "Build your project manually first, then use the --skip-build option",
        "Check that the device web server responds in a browser",
        "Use --package-only if the app is already deployed on the device",
    )


class ArtifactMissingError(RokuPkgError):
    """An expected file is absent."""

    kind = ErrorKind.ARTIFACT_MISSING
    default_remediation = ("Rebuild the project and try again",)


class DiscoveryError(RokuPkgError):
    """Systemic discovery failure such as being unable to bind a socket."""

    kind = ErrorKind.DISCOVERY_FAILED
    default_remediation = ("Check local firewall settings for UDP port 1900",)
