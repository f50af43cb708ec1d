"""Core module for devmemory"""
from devmemory.core.defaults import DEFAULTS, get_default, get_defaults_dict
from devmemory.core.config_manager import (
    ConfigManager,
    get_config_manager,
    init_config_manager,
    load_config_file,
    reset_config_manager,
)

__all__ = [
    "DEFAULTS",
    "get_default",
    "get_defaults_dict",
    "ConfigManager",
    "get_config_manager",
    "init_config_manager",
    "load_config_file",
    "reset_config_manager",
]
