"""
Core package for the POS access core.
"""
from posauth.core.config import settings, get_settings, Settings

__all__ = ["settings", "get_settings", "Settings"]
