"""Configuration loading and validation."""

from .models import CardImportConfig
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "CardImportConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
