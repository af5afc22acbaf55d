"""atomica Configuration — project-level .atomicarc.yml support.

Loads configuration from .atomicarc.yml (or .atomicarc.yaml, .atomicarc.json)
found by walking up from a start directory.

Example .atomicarc.yml:
    backend: z3              # "z3" or "none"
    timeout_ms: 5000         # per solver query
    log_level: info
    section_comments: true   # BEGIN/END markers around rule encodings
    emit_ivl: false          # log the rendered IVL program at debug level
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml


@dataclass
class AtomicaConfig:
    """Project-level atomica configuration."""
    backend: str = "z3"
    timeout_ms: int = 10000
    log_level: str = "warning"
    section_comments: bool = True
    emit_ivl: bool = False


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".atomicarc.yml",
    ".atomicarc.yaml",
    ".atomicarc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> AtomicaConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, returns defaults. A file that cannot be read
    or parsed also yields the defaults.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return AtomicaConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except (IOError, OSError):
        return AtomicaConfig()

    if path.endswith(".json"):
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            return AtomicaConfig()
    else:
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError:
            return AtomicaConfig()

    if not isinstance(data, dict):
        return AtomicaConfig()
    return _dict_to_config(data)


def _dict_to_config(data: Dict[str, Any]) -> AtomicaConfig:
    """Convert a parsed dict to AtomicaConfig."""
    config = AtomicaConfig()

    if "backend" in data:
        config.backend = str(data["backend"])
    if "timeout_ms" in data:
        config.timeout_ms = int(data["timeout_ms"])
    if "log_level" in data:
        config.log_level = str(data["log_level"])
    if "section_comments" in data:
        config.section_comments = bool(data["section_comments"])
    if "emit_ivl" in data:
        config.emit_ivl = bool(data["emit_ivl"])

    return config
