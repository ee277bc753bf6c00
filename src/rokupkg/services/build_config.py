"""Build configuration reader.

Resolves where a project's deployable output lives, using the
BrightScript debug configuration in .vscode/launch.json and the
BrighterScript compiler config bsconfig.json.
"""

from dataclasses import dataclass
from pathlib import Path

from .jsonc import read_jsonc

LAUNCH_FILE = Path(".vscode") / "launch.json"
BSCONFIG_FILE = Path("bsconfig.json")
LAUNCH_TYPES = ("brightscript", "roku")
COMMON_BUILD_DIRS = (".build", "dist", "build", "out", ".out")


@dataclass
class BuildConfig:
    """Build settings extracted from launch.json, with paths made absolute."""

    root_dir: Path
    out_dir: Path | None = None
    staging_folder_path: Path | None = None


def _resolve(project_root: Path, value: object) -> Path | None:
    if not isinstance(value, str) or not value:
        return None
    path = Path(value)
    return path if path.is_absolute() else project_root / path


def extract_build_config(project_root: Path) -> BuildConfig | None:
    """Read the first brightscript/roku launch configuration, if any."""
    data = read_jsonc(project_root / LAUNCH_FILE)
    if data is None:
        return None
    launch = next(
        (
            c
            for c in data.get("configurations") or []
            if isinstance(c, dict) and c.get("type") in LAUNCH_TYPES
        ),
        None,
    )
    if launch is None:
        return None
    return BuildConfig(
        root_dir=_resolve(project_root, launch.get("rootDir")) or project_root,
        out_dir=_resolve(project_root, launch.get("outDir")),
        staging_folder_path=_resolve(project_root, launch.get("stagingFolderPath")),
    )


def resolve_build_directory(project_root: Path) -> Path:
    """Get the effective build directory.

    Priority: launch.json stagingFolderPath, launch.json outDir, bsconfig
    stagingDir, bsconfig outDir (each only if it exists), then the common
    build directory names, then the project root.
    """
    candidates: list[Path | None] = []

    build_config = extract_build_config(project_root)
    if build_config is not None:
        candidates += [build_config.staging_folder_path, build_config.out_dir]

    bsconfig = read_jsonc(project_root / BSCONFIG_FILE)
    if bsconfig is not None:
        candidates += [
            _resolve(project_root, bsconfig.get("stagingDir")),
            _resolve(project_root, bsconfig.get("outDir")),
        ]

    candidates += [project_root / name for name in COMMON_BUILD_DIRS]

    for candidate in candidates:
        if candidate is not None and candidate.exists():
            return candidate
    return project_root
