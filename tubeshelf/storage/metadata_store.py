"""
Song metadata store

Keeps every song that has been resolved or downloaded in one JSON file in
the cache root, keyed by item id, so downloads can be listed and reused
without re-querying yt-dlp:

    {
        "last_updated": "2024-05-01T12:00:00",
        "songs": {"<item_id>": {...SongRecord...}}
    }

Reads go through a five minute in-memory cache.
"""

import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..config.settings import Settings, get_settings
from ..utils.helpers import get_current_timestamp, read_json_file, write_json_atomic
from ..utils.logger import get_logger
from ..youtube.models import SongRecord
from .cache import MISSING, TimedCache
from .cache_dir import CacheDirectoryResolver

FileFinder = Callable[[str], Optional[Path]]


class SongMetadataStore:
    """
    Persistent map of item id to SongRecord

    IO problems never propagate: a failed read is an empty store and a
    failed write returns False.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        settings: Optional[Settings] = None,
        cache_resolver: Optional[CacheDirectoryResolver] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        if path is None:
            resolver = cache_resolver or CacheDirectoryResolver(self.settings)
            path = resolver.metadata_file()
        self.path = Path(path)
        self._cache = TimedCache(float(self.settings.cache.metadata_cache_ttl), clock)

    def load(self) -> Dict[str, SongRecord]:
        """
        Load all songs

        Returns:
            Mapping of item id to song (a copy; mutate through the store)
        """
        cached = self._cache.get()
        if cached is not MISSING:
            return dict(cached)

        songs: Dict[str, SongRecord] = {}
        if self.path.exists():
            try:
                data = read_json_file(self.path) or {}
                entries = data.get('songs', {}) if isinstance(data, dict) else {}
                for item_id, song_data in entries.items():
                    try:
                        song = SongRecord.from_dict(song_data)
                    except (AttributeError, TypeError, ValueError) as e:
                        self.logger.debug(f"Skipping metadata for {item_id}: {e}")
                        continue
                    songs[song.item_id or item_id] = song
            except (OSError, ValueError, AttributeError) as e:
                self.logger.warning(f"Failed to read song metadata {self.path}: {e}")
                return {}

        self._cache.set(songs)
        return dict(songs)

    def save(self, songs: Dict[str, SongRecord]) -> bool:
        """Write all songs, replacing the file"""
        payload = {
            'last_updated': get_current_timestamp(),
            'songs': {item_id: song.to_dict() for item_id, song in songs.items()},
        }
        try:
            write_json_atomic(self.path, payload)
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to save song metadata: {e}")
            return False

        self._cache.set(dict(songs))
        return True

    def add_or_update_song(self, song: SongRecord) -> bool:
        if song is None or not song.item_id:
            self.logger.warning("Not storing metadata for a song without an item id")
            return False

        songs = self.load()
        songs[song.item_id] = song
        return self.save(songs)

    def get_song(self, item_id: str) -> Optional[SongRecord]:
        return self.load().get(item_id)

    def remove_song(self, item_id: str) -> bool:
        songs = self.load()
        if songs.pop(item_id, None) is None:
            return False
        return self.save(songs)

    def get_all_songs(self) -> List[SongRecord]:
        """All known songs ordered by artist and title"""
        return sorted(self.load().values(), key=lambda s: (s.artist.casefold(), s.title.casefold()))

    def get_cached_songs_with_files(self, find_file: FileFinder) -> List[SongRecord]:
        """
        Songs whose media file is still in the cache

        Args:
            find_file: Maps an item id to its cached file (or None)

        Returns:
            Songs marked downloaded with their current file path
        """
        available = []
        for song in self.get_all_songs():
            path = find_file(song.item_id)
            if path is None:
                continue
            if not song.is_downloaded or song.cached_file_path != str(path):
                song.mark_fetched(str(path))
            available.append(song)
        return available

    def cleanup(self, find_file: FileFinder) -> int:
        """
        Drop songs whose downloaded file disappeared

        Songs that were never downloaded are kept.

        Returns:
            Number of entries removed
        """
        songs = self.load()
        stale = [
            item_id for item_id, song in songs.items()
            if song.is_downloaded and find_file(item_id) is None
        ]
        if not stale:
            return 0

        for item_id in stale:
            del songs[item_id]

        if not self.save(songs):
            return 0

        self.logger.info(f"Removed {len(stale)} stale song metadata entries")
        return len(stale)

    def invalidate_cache(self) -> None:
        self._cache.invalidate()
