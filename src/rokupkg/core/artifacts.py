"""Output directory preparation and artifact relocation."""

import logging
import shutil
from pathlib import Path

from ..errors import ArtifactMissingError

logger = logging.getLogger(__name__)


def ensure_output_dir(output_path: Path) -> Path:
    """Create the parent directory of output_path if needed."""
    parent = output_path.parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def relocate_artifact(produced: Path, target: Path) -> Path:
    """Move a produced package to its configured output path.

    The file is copied to target; the original is removed only when it
    lives in a different directory. An artifact already at target is
    left untouched.

    Returns:
        The target path

    Raises:
        ArtifactMissingError: If the produced file is missing or cannot be copied
    """
    if not produced.is_file():
        raise ArtifactMissingError(f"Package was not found at {produced}")
    if produced.resolve() == target.resolve():
        return target

    logger.debug(f"Copying {produced} to {target}")
    try:
        shutil.copyfile(produced, target)
        if produced.parent.resolve() != target.parent.resolve():
            produced.unlink()
    except OSError as e:
        raise ArtifactMissingError(f"Could not move package to {target}: {e}") from e
    return target
