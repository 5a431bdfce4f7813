"""Settings resolution for gcp-emulator-control-plane."""
from __future__ import annotations

from gcp_emulator_control_plane.config.settings import (
    ConfigError,
    IamMode,
    PortSettings,
    Settings,
    SettingsLoader,
)

__all__ = [
    "ConfigError",
    "IamMode",
    "PortSettings",
    "Settings",
    "SettingsLoader",
]
