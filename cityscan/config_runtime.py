"""Runtime configuration: built-in defaults, a per-project JSON file, then env overrides."""

import copy
import json
import os
from pathlib import Path
from typing import Any

from cityscan.utils.logging import logger

CONFIG_DIR = ".cityscan"
CONFIG_FILE = "config.json"

DEFAULTS = {
    "timeouts": {
        "probe": 5,
        "dependency": 120,
        "static": 300,
        "verification": 600,
        "grace": 2,
    },
    "limits": {
        "max_output_bytes": 50 * 1024 * 1024,
        "concurrency": 4,
        "max_files": 1000,
        "max_file_size": 10 * 1024 * 1024,
        "cbmc_unwind": 10,
        "cbmc_max_unwind": 50,
        "cbmc_max_memory_mb": 4096,
    },
    "correlation": {
        "line_radius": 5,
        "column_radius": 10,
    },
    "paths": {
        "temp_patterns": ["/tmp/", "/var/folders/", "/private/tmp/"],
        "skip_dirs": [
            ".git",
            "node_modules",
            "__pycache__",
            ".venv",
            "venv",
            "target",
            "dist",
            "build",
            ".tox",
            ".mypy_cache",
        ],
    },
}


def _coerce(value: str, default: Any) -> Any:
    """Parse an env string into the type of the default it replaces."""
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _merge_file(cfg: dict[str, Any], path: Path) -> None:
    if not path.is_file():
        return
    try:
        user = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return
    if not isinstance(user, dict):
        logger.warning(f"Ignoring config file {path}: top level must be an object")
        return

    for section, values in user.items():
        if section not in cfg or not isinstance(values, dict):
            continue
        for key, value in values.items():
            default = cfg[section].get(key)
            # Unknown keys and values of the wrong type keep the default.
            if key in cfg[section] and isinstance(value, type(default)):
                cfg[section][key] = value


def _apply_env(cfg: dict[str, Any]) -> None:
    for section, values in cfg.items():
        for key, default in values.items():
            env_var = f"CITYSCAN_{section.upper()}_{key.upper()}"
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            try:
                values[key] = _coerce(raw, default)
            except ValueError:
                logger.warning(f"Ignoring {env_var}={raw!r}: expected {type(default).__name__}")


def load_runtime_config(root: str = ".") -> dict[str, Any]:
    """Resolve configuration for the project at ``root``.

    Precedence, highest first: ``CITYSCAN_<SECTION>_<KEY>`` environment
    variables, ``<root>/.cityscan/config.json``, ``DEFAULTS``. The returned
    dict is a fresh copy.
    """
    cfg = copy.deepcopy(DEFAULTS)
    _merge_file(cfg, Path(root) / CONFIG_DIR / CONFIG_FILE)
    _apply_env(cfg)
    return cfg
