from .loader import DEFAULT_CONFIG_TEMPLATE, load_config
from .models import (
    AbcScribeConfig,
    ConversionSettings,
    LLMSettings,
    ValidationSettings,
)

__all__ = [
    "AbcScribeConfig",
    "ConversionSettings",
    "DEFAULT_CONFIG_TEMPLATE",
    "LLMSettings",
    "ValidationSettings",
    "load_config",
]
