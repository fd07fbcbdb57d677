"""
POS Core Config — Public API
===============================
Environment-driven runtime settings.
"""

from core.config.settings import PosSettings, load_settings

__all__ = [
    "PosSettings",
    "load_settings",
]
