"""Reader for VS Code style JSON with comments and trailing commas."""

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Strings are matched first so comment markers and commas inside them survive
_STRING = r'("(?:\\.|[^"\\])*")'
_COMMENTS = re.compile(_STRING + r"|//[^\n]*|/\*.*?\*/", re.DOTALL)
_TRAILING_COMMAS = re.compile(_STRING + r"|,(?=\s*[\]}])")


def _keep_string(match: re.Match[str]) -> str:
    return match.group(1) or ""


def strip_jsonc(text: str) -> str:
    """Remove comments and trailing commas, leaving string literals intact."""
    return _TRAILING_COMMAS.sub(_keep_string, _COMMENTS.sub(_keep_string, text))


def read_jsonc(path: Path) -> dict[str, Any] | None:
    """Read a JSONC file.

    Returns:
        Parsed object, or None if the file is missing, unparsable, or not an object
    """
    if not path.is_file():
        return None
    try:
        data = json.loads(strip_jsonc(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not parse {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: expected a JSON object")
        return None
    return data
