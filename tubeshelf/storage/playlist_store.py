"""
Playlist persistence

Layout inside the playlists directory:

    playlists.json          index: {playlist_id: PlaylistIndexEntry}
    playlist_<id>.json      one file per playlist, songs included

Saving writes the playlist file first and then re-reads, updates and writes
the index. The pair is not atomic: an interruption between the two writes
leaves the index stale. The playlist file is authoritative for its own
content, and `reconcile()` rebuilds index entries from the playlist files.

Listing goes through a short-lived in-memory copy of the index so that
repeated `get_all_playlists()` calls do not hit the disk. Every successful
index write refreshes that copy.

Public methods never raise: IO and validation problems are logged and
reported as None / False / empty results.
"""

import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from ..config.settings import Settings, get_settings
from ..core.exceptions import StorageError
from ..utils.helpers import read_json_file, write_json_atomic
from ..utils.logger import get_logger, log_performance
from ..utils.validation import validate_playlist_id, validate_playlist_name
from ..youtube.models import SongRecord
from .cache import MISSING, TimedCache
from .cache_dir import CacheDirectoryResolver
from .playlist import Playlist, PlaylistIndexEntry


class PlaylistEvent(Enum):
    """Changes reported to store listeners"""
    CREATED = "created"
    SAVED = "saved"
    DELETED = "deleted"


PlaylistListener = Callable[[PlaylistEvent, str], None]


class PlaylistStore:
    """
    CRUD layer over playlist files and the playlist index

    The store owns its index cache; two stores over the same directory do
    not share cached state.
    """

    def __init__(
        self,
        directory: Optional[Path] = None,
        settings: Optional[Settings] = None,
        cache_resolver: Optional[CacheDirectoryResolver] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize playlist store

        Args:
            directory: Playlists directory, defaults to <cache root>/Playlists
            settings: Settings instance, defaults to the global settings
            cache_resolver: Resolver used when no directory is given
            clock: Monotonic time source for the index cache
        """
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        if directory is None:
            resolver = cache_resolver or CacheDirectoryResolver(self.settings)
            directory = resolver.playlists_directory()
        self.directory = Path(directory)

        self.file_prefix = self.settings.playlists.file_prefix
        self._index_cache = TimedCache(float(self.settings.playlists.index_cache_ttl), clock)
        self._listeners: List[PlaylistListener] = []

    # ------------------------------------------------------------------
    # Paths

    @property
    def index_path(self) -> Path:
        return self.directory / self.settings.playlists.index_file

    def playlist_path(self, playlist_id: str) -> Path:
        return self.directory / f"{self.file_prefix}{playlist_id}.json"

    def _ensure_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create playlists directory {self.directory}: {e}")

    # ------------------------------------------------------------------
    # Events

    def add_listener(self, listener: PlaylistListener) -> None:
        """Register a callback receiving (event, playlist_id)"""
        self._listeners.append(listener)

    def remove_listener(self, listener: PlaylistListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: PlaylistEvent, playlist_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, playlist_id)
            except Exception as e:
                self.logger.error(f"Playlist listener failed on {event.value} {playlist_id}: {e}")

    # ------------------------------------------------------------------
    # Index

    def _read_index_from_disk(self) -> Dict[str, PlaylistIndexEntry]:
        """
        Read the index file

        A missing or empty file is an empty index. Individual bad entries
        are skipped.

        Raises:
            StorageError: If the file cannot be read or is not a JSON object
        """
        if not self.index_path.exists():
            return {}

        try:
            data = read_json_file(self.index_path)
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read playlist index: {e}", details={'path': str(self.index_path)})

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageError("Playlist index is not a JSON object", details={'path': str(self.index_path)})

        index: Dict[str, PlaylistIndexEntry] = {}
        for key, entry_data in data.items():
            try:
                entry = PlaylistIndexEntry.from_dict(entry_data)
            except (TypeError, ValueError) as e:
                self.logger.warning(f"Skipping index entry {key}: {e}")
                continue
            index[entry.id] = entry
        return index

    def _load_index(self) -> Dict[str, PlaylistIndexEntry]:
        """Index from the cache, reading the disk only when the cache expired"""
        cached = self._index_cache.get()
        if cached is not MISSING:
            return cached

        try:
            index = self._read_index_from_disk()
        except StorageError as e:
            self.logger.warning(f"{e}; treating index as empty")
            return {}

        self._index_cache.set(index)
        return index

    def _read_index_for_update(self) -> Dict[str, PlaylistIndexEntry]:
        """Fresh copy of the on-disk index for a read-modify-write cycle"""
        try:
            return self._read_index_from_disk()
        except StorageError as e:
            self.logger.warning(f"{e}; rebuilding index from scratch")
            return {}

    def _write_index(self, index: Dict[str, PlaylistIndexEntry]) -> None:
        """
        Raises:
            StorageError: If the index cannot be written
        """
        self._ensure_directory()
        payload = {playlist_id: entry.to_dict() for playlist_id, entry in index.items()}
        try:
            write_json_atomic(self.index_path, payload)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot write playlist index: {e}", details={'path': str(self.index_path)})
        self._index_cache.set(dict(index))

    def invalidate_cache(self) -> None:
        """Drop the cached index so the next read goes to disk"""
        self._index_cache.invalidate()

    # ------------------------------------------------------------------
    # CRUD

    def create_playlist(self, name: str, description: Optional[str] = None) -> Optional[Playlist]:
        """
        Create and persist a new playlist

        Args:
            name: Playlist name, must not be empty
            description: Optional description

        Returns:
            The new playlist, or None if the name is invalid or saving failed
        """
        is_valid, error = validate_playlist_name(name)
        if not is_valid:
            self.logger.warning(f"Playlist not created: {error}")
            return None

        playlist = Playlist.new(name, description)
        if not self.save_playlist(playlist):
            return None

        self.logger.info(f"Created playlist '{playlist.name}' ({playlist.id})")
        self._emit(PlaylistEvent.CREATED, playlist.id)
        return playlist

    def save_playlist(self, playlist: Playlist) -> bool:
        """
        Write a playlist file and update its index entry

        Args:
            playlist: Playlist to persist, with a valid id and a non-empty name

        Returns:
            True if both the playlist file and the index were written
        """
        if playlist is None:
            return False

        is_valid, error = validate_playlist_id(playlist.id)
        if not is_valid:
            self.logger.warning(f"Playlist not saved: {error}")
            return False

        is_valid, error = validate_playlist_name(playlist.name)
        if not is_valid:
            self.logger.warning(f"Playlist {playlist.id} not saved: {error}")
            return False

        try:
            self._ensure_directory()
            write_json_atomic(self.playlist_path(playlist.id), playlist.to_dict())
        except StorageError as e:
            self.logger.error(f"Failed to save playlist {playlist.id}: {e}")
            return False
        except (OSError, TypeError, ValueError) as e:
            self.logger.error(f"Failed to write playlist file for {playlist.id}: {e}")
            return False

        try:
            index = self._read_index_for_update()
            index[playlist.id] = PlaylistIndexEntry.from_playlist(playlist)
            self._write_index(index)
        except StorageError as e:
            self.logger.error(f"Playlist {playlist.id} saved but index update failed: {e}")
            return False

        self.logger.debug(f"Saved playlist {playlist.id} with {playlist.song_count} songs")
        self._emit(PlaylistEvent.SAVED, playlist.id)
        return True

    def load_playlist(self, playlist_id: str) -> Optional[Playlist]:
        """
        Load a playlist file

        Returns:
            Playlist, or None if the file is missing, empty or malformed
        """
        is_valid, error = validate_playlist_id(playlist_id)
        if not is_valid:
            self.logger.debug(f"Not loading playlist: {error}")
            return None

        path = self.playlist_path(playlist_id)
        if not path.exists():
            self.logger.debug(f"Playlist file not found: {path}")
            return None

        try:
            data = read_json_file(path)
            if data is None:
                self.logger.warning(f"Playlist file {path.name} is empty")
                return None
            playlist = Playlist.from_dict(data)
        except (OSError, TypeError, ValueError) as e:
            self.logger.warning(f"Failed to load playlist {playlist_id}: {e}")
            return None

        if playlist.id != playlist_id:
            self.logger.warning(f"Playlist file {path.name} contains id {playlist.id}")
            return None

        return playlist

    def delete_playlist(self, playlist_id: str) -> bool:
        """
        Delete a playlist file and its index entry

        Deleting a playlist that does not exist succeeds.

        Returns:
            False only on invalid ids or IO errors
        """
        is_valid, error = validate_playlist_id(playlist_id)
        if not is_valid:
            self.logger.warning(f"Playlist not deleted: {error}")
            return False

        try:
            self.playlist_path(playlist_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.error(f"Failed to delete playlist file {playlist_id}: {e}")
            return False

        try:
            index = self._read_index_for_update()
            if index.pop(playlist_id, None) is not None:
                self._write_index(index)
            else:
                self._index_cache.set(index)
        except StorageError as e:
            self.logger.error(f"Playlist {playlist_id} deleted but index update failed: {e}")
            return False

        self.logger.info(f"Deleted playlist {playlist_id}")
        self._emit(PlaylistEvent.DELETED, playlist_id)
        return True

    def get_all_playlists(self) -> List[PlaylistIndexEntry]:
        """
        List playlist summaries from the (cached) index

        Returns:
            Index entries sorted by name
        """
        return sorted(self._load_index().values(), key=lambda entry: (entry.name.casefold(), entry.id))

    # ------------------------------------------------------------------
    # Song membership

    def add_song(self, playlist: Playlist, song: SongRecord) -> bool:
        """
        Add a song to a playlist in memory

        The caller persists the change with save_playlist().

        Returns:
            False if a song with the same item id is already present
        """
        if playlist is None or song is None:
            return False

        if not song.item_id:
            self.logger.warning(f"Cannot add song without an item id: {song.url}")
            return False

        if not playlist.add_song(song):
            self.logger.info(f"'{song.title}' is already in '{playlist.name}'")
            return False

        self.logger.debug(f"Added {song.item_id} to {playlist.id}")
        return True

    def remove_song(self, playlist: Playlist, item_id: str) -> bool:
        """
        Remove a song from a playlist in memory

        Returns:
            False if no song with that item id is present
        """
        if playlist is None or not playlist.remove_song(item_id):
            return False

        self.logger.debug(f"Removed {item_id} from {playlist.id}")
        return True

    def update_song_download_status(self, item_id: str, is_downloaded: bool,
                                    cached_file_path: str = "") -> int:
        """
        Propagate a song's download state to every playlist containing it

        Returns:
            Number of playlists updated and saved
        """
        updated = 0
        for playlist in self._iter_playlists():
            if playlist.update_song_download_status(item_id, is_downloaded, cached_file_path):
                if self.save_playlist(playlist):
                    updated += 1
        if updated:
            self.logger.debug(f"Updated {item_id} in {updated} playlists")
        return updated

    def _iter_playlists(self) -> Iterable[Playlist]:
        for entry in self.get_all_playlists():
            playlist = self.load_playlist(entry.id)
            if playlist is not None:
                yield playlist

    # ------------------------------------------------------------------
    # Maintenance

    def get_first_playlist(self) -> Optional[Playlist]:
        """Load the oldest playlist that can still be read"""
        for entry in sorted(self.get_all_playlists(), key=lambda e: e.created_at):
            playlist = self.load_playlist(entry.id)
            if playlist is not None:
                return playlist
        return None

    def create_default_playlist(self, songs: Iterable[SongRecord]) -> Optional[Playlist]:
        """
        Create the default playlist from already downloaded songs

        Only runs when no playlist exists yet and at least one song is
        downloaded.

        Returns:
            The created playlist, or None
        """
        if self.get_all_playlists():
            return None

        downloaded = [song for song in songs if song.is_downloaded]
        if not downloaded:
            return None

        playlist = self.create_playlist(
            self.settings.playlists.default_name,
            self.settings.playlists.default_description
        )
        if playlist is None:
            return None

        added = sum(1 for song in downloaded if playlist.add_song(song))
        if not self.save_playlist(playlist):
            return None

        self.logger.info(f"Created default playlist with {added} songs")
        return playlist

    @log_performance
    def reconcile(self) -> int:
        """
        Rebuild the index from the playlist files

        Each readable playlist file overwrites its index entry. Entries
        whose file no longer exists are removed. Unreadable files are
        logged and left alone, keeping any entry they already have.

        Returns:
            Number of index entries added, changed or removed
        """
        index = self._read_index_for_update()
        fixes = 0
        seen = set()

        try:
            paths = sorted(self.directory.glob(f"{self.file_prefix}*.json"))
        except OSError as e:
            self.logger.error(f"Cannot scan {self.directory}: {e}")
            return 0

        for path in paths:
            if path == self.index_path:
                continue

            playlist_id = path.stem[len(self.file_prefix):]
            playlist = self.load_playlist(playlist_id)
            if playlist is None:
                self.logger.warning(f"Unreadable playlist file left in place: {path.name}")
                seen.add(playlist_id)
                continue

            seen.add(playlist_id)
            existing = index.get(playlist_id)
            if existing is None or not existing.matches(playlist):
                index[playlist_id] = PlaylistIndexEntry.from_playlist(playlist)
                fixes += 1

        for playlist_id in list(index):
            if playlist_id not in seen:
                del index[playlist_id]
                fixes += 1

        if fixes:
            try:
                self._write_index(index)
            except StorageError as e:
                self.logger.error(f"Reconciled index could not be written: {e}")
                return 0
            self.logger.info(f"Reconciled playlist index: {fixes} corrections")
        else:
            self._index_cache.set(index)

        return fixes
