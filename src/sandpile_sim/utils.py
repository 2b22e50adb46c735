# src/sandpile_sim/utils.py
from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path
from typing import Any, Dict

SNAPSHOT_SUFFIX = ".sand"
DEFAULT_SNAPSHOT = "sandpile" + SNAPSHOT_SUFFIX


def snapshot_name(total_grains: int) -> str:
    """Default file name for a snapshot taken after ``total_grains`` grains."""
    return f"sandpile_{total_grains:08d}{SNAPSHOT_SUFFIX}"


def load_params(path: str | os.PathLike[str]) -> Dict[str, Any]:
    """
    Load simulation parameters from JSON or TOML.
    """
    path = str(path)
    with open(path, "rb") as fh:
        data = fh.read()
    suffix = Path(path).suffix.lower()
    if suffix in {".json", ""}:
        return json.loads(data.decode("utf-8"))
    if suffix in {".toml", ".tml"}:
        return tomllib.loads(data.decode("utf-8"))
    raise ValueError(f"Unsupported parameter file format: {suffix}")
