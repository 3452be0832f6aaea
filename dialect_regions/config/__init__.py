"""Named engine configurations."""

from .loader import list_configs, load_config, save_config

__all__ = [
    "list_configs",
    "load_config",
    "save_config",
]
