"""File output utilities for rendered artifacts."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml


def write_text(dest: str | Path, content: str) -> Path:
    """Write a text artifact atomically.

    Writes to a temp file in the destination directory, then renames,
    so readers never see a partial file.

    Args:
        dest: Path to write.
        content: File content.

    Returns:
        The destination path.
    """
    dest_path = Path(dest)

    # Ensure parent directory exists
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=dest_path.parent,
        delete=False,
        suffix=".tmp",
    ) as f:
        f.write(content)
        temp_path = f.name

    os.replace(temp_path, dest_path)
    return dest_path


def dump_yaml(obj: Any) -> str:
    """Serialize to block-style YAML, preserving key order."""
    return yaml.safe_dump(obj, default_flow_style=False, sort_keys=False, allow_unicode=True)


def write_yaml(dest: str | Path, obj: Any) -> Path:
    """Write a YAML artifact atomically."""
    return write_text(dest, dump_yaml(obj))


def write_json(dest: str | Path, obj: Any) -> Path:
    """Write a JSON artifact atomically, with a trailing newline."""
    return write_text(dest, json.dumps(obj, indent=2, default=str) + "\n")


def read_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping (empty dict if the file is missing or empty)."""
    path = Path(path)
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}
