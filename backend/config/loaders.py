"""
Configuration file loaders.

Provides functions to load specific configuration files with caching.

Caching Behavior:
-----------------
Configuration files are cached with mtime-based invalidation. The cache is
automatically refreshed when the underlying YAML file is modified. File paths
come from ``core.settings`` so tests can point them elsewhere.
"""

import logging
from typing import Any, Dict

from .cache import get_cached_config

logger = logging.getLogger(__name__)


def get_personas_config() -> Dict[str, Any]:
    """
    Load the built-in participant catalogue from personas.yaml.

    Returns:
        Dictionary with a ``personas`` mapping and ``custom`` defaults
    """
    from core import get_settings

    return get_cached_config(get_settings().personas_config_path)


def get_conversation_context_config() -> Dict[str, Any]:
    """
    Load the prompt templates from conversation_context.yaml.

    Returns:
        Dictionary containing conversation context templates
    """
    from core import get_settings

    return get_cached_config(get_settings().conversation_context_config_path)


def get_custom_participant_defaults() -> Dict[str, Any]:
    """Defaults applied to user-supplied participants (provider, model, endpoint)."""
    return get_personas_config().get("custom", {}) or {}


__all__ = [
    "get_personas_config",
    "get_conversation_context_config",
    "get_custom_participant_defaults",
]
