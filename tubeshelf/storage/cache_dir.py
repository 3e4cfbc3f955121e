"""
Cache directory resolution

The cache root holds downloaded media (`<itemId>.<ext>`), the song metadata
file and the Playlists directory. It lives under the current working
directory when possible and under the system temp root otherwise.
"""

import tempfile
from pathlib import Path
from typing import Optional

from ..config.settings import Settings, get_settings
from ..utils.logger import get_logger


class CacheDirectoryResolver:
    """
    Computes and lazily creates the cache root

    `resolve()` never raises: any failure creating the primary directory
    switches to the temp fallback for the rest of the resolver's lifetime.
    """

    def __init__(self, settings: Optional[Settings] = None, primary: Optional[Path] = None):
        """
        Initialize resolver

        Args:
            settings: Settings instance, defaults to the global settings
            primary: Override for the primary cache directory
        """
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self.primary = Path(primary) if primary else self.settings.get_cache_directory()
        self.fallback = Path(tempfile.gettempdir()) / self.settings.cache.fallback_name / "YouTube"
        self._resolved: Optional[Path] = None

    def resolve(self) -> Path:
        """
        Get the cache root, creating it on first use

        Returns:
            Usable cache directory path
        """
        if self._resolved is not None and self._resolved.is_dir():
            return self._resolved

        try:
            self.primary.mkdir(parents=True, exist_ok=True)
            self._resolved = self.primary
        except Exception as e:
            self.logger.warning(f"Cache directory {self.primary} unusable ({e}), using {self.fallback}")
            self._resolved = self._resolve_fallback()

        return self._resolved

    def _resolve_fallback(self) -> Path:
        try:
            self.fallback.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            self.logger.error(f"Fallback cache directory {self.fallback} unusable: {e}")
        return self.fallback

    @property
    def using_fallback(self) -> bool:
        return self._resolved is not None and self._resolved == self.fallback

    def playlists_directory(self) -> Path:
        """Directory holding playlist files and the playlist index"""
        return self.resolve() / self.settings.playlists.directory_name

    def metadata_file(self) -> Path:
        """Song metadata store file"""
        return self.resolve() / self.settings.cache.metadata_file
