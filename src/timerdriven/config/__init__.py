from .settings import (
    Settings,
    StateManagementConfig,
    StorageConfig,
    TimingConfig,
    get_settings,
    reset_settings,
)

__all__ = [
    "Settings",
    "StateManagementConfig",
    "StorageConfig",
    "TimingConfig",
    "get_settings",
    "reset_settings",
]
