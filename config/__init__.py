"""
Configuration Management Module
"""
from .settings import (
    CollectorSettings,
    Settings,
    XAISettings,
    get_collector_settings,
    get_settings,
    get_xai_settings,
)

__all__ = [
    "CollectorSettings",
    "Settings",
    "XAISettings",
    "get_collector_settings",
    "get_settings",
    "get_xai_settings",
]
