"""
Configuration management for relaykit.

Handles:
- Bus config (bus.yaml): bus settings and handler bindings
"""

from .loader import (
    BindingConfig,
    BusConfig,
    ConfigError,
    ConfigLoader,
)
from .models import BusDocument, BusSettings, HandlerBindingConfig

__all__ = [
    "BindingConfig",
    "BusConfig",
    "BusDocument",
    "BusSettings",
    "ConfigError",
    "ConfigLoader",
    "HandlerBindingConfig",
]
