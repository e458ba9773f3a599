"""Configuration for the cloudres reconciliation engine."""

from cloudres.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
