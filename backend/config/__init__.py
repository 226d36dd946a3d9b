"""
YAML configuration for participants and prompt templates.
"""

from .cache import clear_cache, get_cached_config
from .loaders import (
    get_conversation_context_config,
    get_custom_participant_defaults,
    get_personas_config,
)
from .validation import log_config_validation, reload_all_configs, validate_config_schema

__all__ = [
    "clear_cache",
    "get_cached_config",
    "get_personas_config",
    "get_conversation_context_config",
    "get_custom_participant_defaults",
    "log_config_validation",
    "reload_all_configs",
    "validate_config_schema",
]
