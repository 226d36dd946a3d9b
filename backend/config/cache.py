"""
YAML configuration cache.

Files are cached by path and invalidated when their modification time changes,
so edits to persona or prompt templates are picked up without a restart.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

logger = logging.getLogger(__name__)

# path -> (mtime, parsed content)
_config_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}


def _get_file_mtime(file_path: Path) -> float:
    """Return the file's modification time, or 0.0 if it does not exist."""
    try:
        return file_path.stat().st_mtime
    except OSError:
        return 0.0


def _load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load a YAML file.

    Returns:
        Parsed mapping, or an empty dict if the file is missing or empty
    """
    if not file_path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def get_cached_config(file_path: Path, force_reload: bool = False) -> Dict[str, Any]:
    """
    Get a configuration file, reloading it when the file has changed.

    Args:
        file_path: Path to the YAML file
        force_reload: Bypass the cache

    Returns:
        Parsed configuration mapping
    """
    cache_key = str(file_path)
    current_mtime = _get_file_mtime(file_path)

    if not force_reload and cache_key in _config_cache:
        cached_mtime, cached_config = _config_cache[cache_key]
        if cached_mtime == current_mtime:
            return cached_config

    config = _load_yaml_file(file_path)
    _config_cache[cache_key] = (current_mtime, config)
    logger.debug(f"Loaded config: {file_path.name}")
    return config


def clear_cache() -> None:
    """Drop every cached configuration file."""
    _config_cache.clear()
