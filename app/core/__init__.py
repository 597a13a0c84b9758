"""
Core module initialization.
Exports configuration, logging, caller identity and the error taxonomy.
"""

from app.core.config import get_settings, Settings, EnvironmentMode

__all__ = ["get_settings", "Settings", "EnvironmentMode"]
