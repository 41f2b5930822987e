"""
Встроенные плагины.
"""

from .bootstrap import BOOTSTRAP_PLUGIN_NAME, create_bootstrap_plugin

__all__ = [
    "BOOTSTRAP_PLUGIN_NAME",
    "create_bootstrap_plugin",
]
