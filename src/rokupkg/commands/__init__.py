"""CLI command implementations for roku-pkg.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .device import device
from .discover import discover
from .generate import generate
from .project import add, edit, list_projects, remove

__all__ = [
    "add",
    "device",
    "discover",
    "edit",
    "generate",
    "list_projects",
    "remove",
]
