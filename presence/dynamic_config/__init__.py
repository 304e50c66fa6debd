"""
Dynamic configuration system with type-safe access.

Usage:
    manager = ConfigManager(session_factory)
    manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
    await manager.initialize_all_configs()

    watchdog = manager.get_typed(WATCHDOG_MODULE, WatchdogConfig)
    timeout = watchdog.session_timeout_ms  # int
"""

from .configs.watchdog import SESSION_TIMEOUT_FLOOR_MS, WatchdogConfig
from .manager import ConfigManager
from .schemas import BaseConfigSchema

WATCHDOG_MODULE = "watchdog"

__all__ = [
    "BaseConfigSchema",
    "ConfigManager",
    "SESSION_TIMEOUT_FLOOR_MS",
    "WATCHDOG_MODULE",
    "WatchdogConfig",
]
