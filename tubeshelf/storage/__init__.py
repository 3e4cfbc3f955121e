"""
Storage package
Cache directory resolution, playlists and song metadata on disk
"""

from .cache import TimedCache, MISSING
from .cache_dir import CacheDirectoryResolver
from .playlist import Playlist, PlaylistIndexEntry, generate_playlist_id
from .playlist_store import PlaylistStore, PlaylistEvent
from .metadata_store import SongMetadataStore

__all__ = [
    'TimedCache',
    'MISSING',
    'CacheDirectoryResolver',
    'Playlist',
    'PlaylistIndexEntry',
    'generate_playlist_id',
    'PlaylistStore',
    'PlaylistEvent',
    'SongMetadataStore'
]
