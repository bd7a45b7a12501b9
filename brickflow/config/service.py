"""
Settings access for brickflow.

Settings are read once from the environment and cached.
"""

from __future__ import annotations

import logging
import os

from .schemas import RuntimeSettings

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}

_settings: RuntimeSettings | None = None


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def get_settings() -> RuntimeSettings:
    """
    Get runtime settings from environment.

    Reads BRICKFLOW_* variables on first access and caches the result.
    """
    global _settings
    if _settings is None:
        _settings = RuntimeSettings(
            validate_input=_env_bool("BRICKFLOW_VALIDATE_INPUT", True),
            autoescape=_env_bool("BRICKFLOW_AUTOESCAPE", True),
            log_values=_env_bool("BRICKFLOW_LOG_VALUES", False),
            default_template_engine=os.getenv("BRICKFLOW_DEFAULT_TEMPLATE_ENGINE", "nunjucks"),
            implicit_templates=_env_bool("BRICKFLOW_IMPLICIT_TEMPLATES", False),
            max_trace_records=int(os.getenv("BRICKFLOW_MAX_TRACE_RECORDS", "1000")),
            logger_name=os.getenv("BRICKFLOW_LOGGER_NAME", "brickflow"),
        )
        logger.debug(f"Loaded runtime settings: {_settings.model_dump()}")
    return _settings


def reset_settings() -> None:
    """Drop cached settings (for testing)."""
    global _settings
    _settings = None
