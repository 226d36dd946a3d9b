"""
Configuration validation and logging.

Provides functions for validating configuration schema and startup logging.
"""

import logging

from domain.enums import ProviderKind

from .cache import clear_cache
from .loaders import get_conversation_context_config, get_personas_config

logger = logging.getLogger(__name__)

_PROVIDER_VALUES = {p.value for p in ProviderKind}
_REQUIRED_TEMPLATES = ("topic_line", "header", "response_instruction")


def reload_all_configs():
    """Force reload all configuration files by clearing the cache."""
    clear_cache()
    logger.info("Reloaded all configuration files")


def validate_config_schema() -> list[str]:
    """
    Validate configuration files have required keys and structure.

    Returns:
        List of validation errors (empty if all valid)
    """
    errors = []

    personas_config = get_personas_config()
    if not personas_config:
        errors.append("personas.yaml is empty or missing")
    elif "personas" not in personas_config:
        errors.append("personas.yaml missing 'personas' section")
    else:
        for name, persona in (personas_config["personas"] or {}).items():
            if not isinstance(persona, dict):
                errors.append(f"personas.yaml persona '{name}' must be a mapping")
                continue
            if "persona" not in persona:
                errors.append(f"personas.yaml persona '{name}' missing 'persona' field")
            if "model_id" not in persona:
                errors.append(f"personas.yaml persona '{name}' missing 'model_id' field")
            if persona.get("provider") not in _PROVIDER_VALUES:
                errors.append(f"personas.yaml persona '{name}' has unknown provider: {persona.get('provider')}")

    context_config = get_conversation_context_config()
    if not context_config:
        errors.append("conversation_context.yaml is empty or missing")
    elif "conversation_context" not in context_config:
        errors.append("conversation_context.yaml missing 'conversation_context' section")
    else:
        for key in _REQUIRED_TEMPLATES:
            if key not in context_config["conversation_context"]:
                errors.append(f"conversation_context.yaml missing '{key}' template")

    return errors


def log_config_validation():
    """
    Validate and log configuration status at startup.

    This should be called once during application initialization.
    """
    logger.info("Validating YAML configuration files...")

    errors = validate_config_schema()

    if errors:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"   - {error}")
        logger.error("Fix configuration files in backend/config/")
    else:
        logger.info("All configuration files validated successfully")

    personas = get_personas_config().get("personas") or {}
    logger.info(f"Built-in participants: {len(personas)} ({', '.join(personas.keys())})")


__all__ = [
    "reload_all_configs",
    "validate_config_schema",
    "log_config_validation",
]
