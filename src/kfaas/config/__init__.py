"""
kfaas configuration.

Pydantic-based settings loaded from environment variables (``KFAAS_`` prefix)
and an optional ``.env`` file.
"""

from kfaas.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
