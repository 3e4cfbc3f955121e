"""
Configuration package for TubeShelf

Settings are loaded from YAML files and environment variables into dataclass
sections. Most modules use the shared instance:

    from tubeshelf.config import get_settings

    settings = get_settings()

Tests and embedding hosts can construct their own `Settings` and pass it to
the service objects instead.
"""

from .settings import get_settings, reload_settings, Settings

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings'
]
