"""Structural checks on build output and package files."""

import os
from pathlib import Path

MANIFEST_FILE = "manifest"
SOURCE_DIR = "source"
ENTRY_POINT = "main.brs"


def build_exists(build_dir: Path) -> bool:
    """A build exists when the directory holds a manifest."""
    return (build_dir / MANIFEST_FILE).is_file()


def validate_build_dir(build_dir: Path) -> list[str]:
    """Collect every structural problem with a build directory.

    Returns:
        List of problems; empty when the directory is deployable
    """
    errors: list[str] = []
    if not (build_dir / MANIFEST_FILE).is_file():
        errors.append(f"Missing required file: {MANIFEST_FILE}")

    source = build_dir / SOURCE_DIR
    if not source.is_dir():
        errors.append(f"Missing required directory: {SOURCE_DIR}")
    elif not (source / ENTRY_POINT).is_file():
        errors.append(f"Missing required file: {SOURCE_DIR}/{ENTRY_POINT}")
    return errors


def validate_package_file(path: Path) -> str | None:
    """Check a signed package file.

    Returns:
        Error message, or None if the file is usable
    """
    if not path.exists():
        return f"File not found: {path}"
    if not os.access(path, os.R_OK):
        return f"File is not readable: {path}"
    if path.suffix.lower() != ".pkg":
        return f"File must have .pkg extension: {path}"
    if path.stat().st_size == 0:
        return f"File is empty: {path}"
    return None
