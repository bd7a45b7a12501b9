"""
Configuration module for brickflow.
"""

from .schemas import RuntimeSettings
from .service import get_settings, reset_settings

__all__ = [
    "RuntimeSettings",
    "get_settings",
    "reset_settings",
]
