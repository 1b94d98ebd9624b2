"""Auto-detect the kind of document handed to the importer."""

import json
from pathlib import Path

import yaml


def detect_format(file_path: Path) -> str:
    """Detect the format of an import source file.

    Returns: 'swagger', 'curl', or 'unknown'.
    """
    text = file_path.read_text(encoding="utf-8")

    if text.lstrip().startswith("curl "):
        return "curl"

    # Try YAML/JSON parsing
    try:
        data = yaml.safe_load(text)
        if isinstance(data, dict) and ("openapi" in data or "swagger" in data):
            return "swagger"
    except yaml.YAMLError:
        pass

    # Try JSON specifically (for files not parseable as YAML)
    try:
        data = json.loads(text)
        if isinstance(data, dict) and ("openapi" in data or "swagger" in data):
            return "swagger"
    except ValueError:
        pass

    return "unknown"
