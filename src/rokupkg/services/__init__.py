"""External service integrations for roku-pkg.

This package provides interfaces to the device and the local machine:
- device_api: ECP and developer web server requests
- discovery: multicast and subnet device discovery
- auth: reachability and credential checks
- backend: sideload, rekey, and package operations
- tasks: .vscode/tasks.json catalog
- build_config: build directory resolution
- task_runner: build task execution
"""

from .auth import DeviceAuthenticator
from .backend import DeploymentBackend, HttpDeploymentBackend, zip_build_dir
from .build_config import BuildConfig, extract_build_config, resolve_build_directory
from .device_api import DeviceClient, parse_device_info
from .discovery import NetworkDiscoveryService, candidate_prefixes, merge_devices
from .task_runner import BuildTaskRunner, resolve_command, resolve_cwd
from .tasks import find_task, list_tasks, select_build_tasks

__all__ = [
    "BuildConfig",
    "BuildTaskRunner",
    "DeploymentBackend",
    "DeviceAuthenticator",
    "DeviceClient",
    "HttpDeploymentBackend",
    "NetworkDiscoveryService",
    "candidate_prefixes",
    "extract_build_config",
    "find_task",
    "list_tasks",
    "merge_devices",
    "parse_device_info",
    "resolve_build_directory",
    "resolve_command",
    "resolve_cwd",
    "select_build_tasks",
    "zip_build_dir",
]
