"""Config package exports."""

from .toggles import (
    AllowedLogLevel,
    Settings,
    configure_logging,
    get_settings,
)

__all__ = [
    "Settings",
    "AllowedLogLevel",
    "configure_logging",
    "get_settings",
]
