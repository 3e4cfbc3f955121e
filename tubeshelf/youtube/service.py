"""
Collaborator-facing service for UI and playback code

TubeShelfService owns one instance of every pipeline component and exposes
the operations other code calls:

- get_song_details(url, callback): resolve songs for a URL
- download_song(song, progress_callback, completion_callback): fetch audio
- find_downloaded_file(url): locate an already cached file
- playlist CRUD passed through to the PlaylistStore

Nothing blocks. Work runs as tasks on the service's scheduler and callbacks
fire from `tick()`, on whichever thread drives it. Hosts with a frame loop
call `tick()` once per frame; command-line hosts use `wait(task)`.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..audio.decoder import DecoderRegistry
from ..config.settings import Settings, get_settings
from ..core.exceptions import ToolUnavailableError
from ..core.scheduler import Scheduler, Task
from ..storage.cache_dir import CacheDirectoryResolver
from ..storage.metadata_store import SongMetadataStore
from ..storage.playlist import Playlist, PlaylistIndexEntry
from ..storage.playlist_store import PlaylistStore
from ..tools.locator import DependencyStatus, ToolLocator, YT_DLP
from ..tools.runner import ProcessResult, ProcessRunner
from ..utils.logger import get_logger
from .downloader import DownloadOrchestrator, find_cached_file
from .extractor import build_metadata_arguments, parse_output
from .models import SongRecord
from .urls import extract_item_id

SongsCallback = Callable[[List[SongRecord]], None]


class TubeShelfService:
    """
    Pipeline facade

    Every collaborator can be injected, which is how tests swap in fakes;
    anything not supplied is built from settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
        locator: Optional[ToolLocator] = None,
        cache_resolver: Optional[CacheDirectoryResolver] = None,
        runner: Optional[ProcessRunner] = None,
        playlist_store: Optional[PlaylistStore] = None,
        metadata_store: Optional[SongMetadataStore] = None,
        decoders: Optional[DecoderRegistry] = None
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)

        self.scheduler = scheduler or Scheduler()
        self.locator = locator or ToolLocator(self.settings)
        self.cache_resolver = cache_resolver or CacheDirectoryResolver(self.settings)
        self.runner = runner or ProcessRunner(self.scheduler, self.settings)
        self.orchestrator = DownloadOrchestrator(
            self.scheduler, self.runner, self.locator, self.cache_resolver, self.settings
        )
        self.playlists = playlist_store or PlaylistStore(settings=self.settings, cache_resolver=self.cache_resolver)
        self.metadata = metadata_store or SongMetadataStore(settings=self.settings, cache_resolver=self.cache_resolver)
        if decoders is None:
            decoders = DecoderRegistry()
            decoders.load_entry_points()
        self.decoders = decoders

    # ------------------------------------------------------------------
    # Scheduling

    def tick(self) -> int:
        """Advance all pending work by one step"""
        return self.scheduler.tick()

    def wait(self, task: Optional[Task], timeout: Optional[float] = None) -> bool:
        """
        Tick until a task finishes

        Returns:
            True if the task finished (False for None or on timeout)
        """
        if task is None:
            return False
        return self.scheduler.run_until_complete(task, timeout=timeout)

    # ------------------------------------------------------------------
    # Metadata

    def get_song_details(self, url: str, callback: Optional[SongsCallback] = None) -> Optional[Task]:
        """
        Resolve the songs behind a URL

        The callback always fires exactly once, with an empty list when the
        URL is empty, yt-dlp is missing, or the query fails.

        Args:
            url: Video or playlist URL
            callback: Receives the parsed songs

        Returns:
            Task whose result is the song list, or None if rejected up front
        """
        if not url or not url.strip():
            self.logger.warning("Song details requested for an empty URL")
            self._deliver(callback, [])
            return None

        try:
            yt_dlp = self.locator.require(YT_DLP)
        except ToolUnavailableError as e:
            self.logger.warning(f"Cannot fetch song details: {e}")
            self._deliver(callback, [])
            return None

        routine = self._details_routine(url.strip(), yt_dlp, callback)
        return self.scheduler.start(routine, name=f"details {url.strip()}")

    def _details_routine(self, url: str, yt_dlp: str, callback: Optional[SongsCallback]):
        result: Optional[ProcessResult] = yield self.runner.run(
            yt_dlp, build_metadata_arguments(url), name=f"yt-dlp --dump-json {url}",
            timeout=self.settings.download.metadata_timeout
        )

        songs: List[SongRecord] = []
        if result is None or result.exit_code != 0:
            exit_code = result.exit_code if result else -1
            self.logger.warning(f"Metadata fetch for {url} failed with exit code {exit_code}")
        else:
            songs = parse_output(result.output)
            self._attach_cached_files(songs)
            self.logger.info(f"Found {len(songs)} songs for {url}")

        self._deliver(callback, songs)
        return songs

    def _attach_cached_files(self, songs: List[SongRecord]) -> None:
        cache_dir = self.cache_resolver.resolve()
        for song in songs:
            path = find_cached_file(cache_dir, song.item_id)
            if path is not None:
                song.mark_fetched(str(path))

    def _deliver(self, callback: Optional[SongsCallback], songs: List[SongRecord]) -> None:
        if callback is None:
            return
        try:
            callback(songs)
        except Exception as e:
            self.logger.error(f"Song details callback failed: {e}")

    # ------------------------------------------------------------------
    # Downloads

    def download_song(
        self,
        song: SongRecord,
        progress_callback: Optional[Callable[[str], None]] = None,
        completion_callback: Optional[Callable[[bool], None]] = None
    ) -> Optional[Task]:
        """
        Fetch a song's audio into the cache

        On success the song is probed for duration and size, recorded in
        the metadata store, and updated in every playlist containing it.

        Returns:
            Download task, or None if the request was rejected
        """
        def on_complete(success: bool) -> None:
            if success:
                self._record_download(song)
            if completion_callback is not None:
                completion_callback(success)

        return self.orchestrator.download_song(song, progress_callback, on_complete)

    def download_songs(self, songs: List[SongRecord],
                       on_song_complete: Optional[Callable[[SongRecord, bool], None]] = None,
                       on_finished: Optional[Callable[[int, int], None]] = None) -> Task:
        """Download several songs with the configured concurrency limit"""
        def on_each(song: SongRecord, success: bool) -> None:
            if success:
                self._record_download(song)
            if on_song_complete is not None:
                on_song_complete(song, success)

        return self.orchestrator.download_songs(songs, on_each, on_finished)

    def _record_download(self, song: SongRecord) -> None:
        try:
            info = self.decoders.probe(song.cached_file_path)
            if info is not None and song.duration <= 0:
                song.duration = info.duration_seconds

            self.metadata.add_or_update_song(song)
            self.playlists.update_song_download_status(song.item_id, True, song.cached_file_path)
        except Exception as e:
            self.logger.error(f"Failed to record download of {song.item_id}: {e}")

    def find_downloaded_file(self, url: str) -> str:
        """
        Locate the cached file for a URL

        Returns:
            File path, or an empty string when nothing is cached
        """
        item_id = extract_item_id(url)
        if not item_id:
            return ""
        path = self.orchestrator.find_downloaded_file(item_id)
        return str(path) if path else ""

    # ------------------------------------------------------------------
    # Playlists

    def create_playlist(self, name: str, description: Optional[str] = None) -> Optional[Playlist]:
        return self.playlists.create_playlist(name, description)

    def save_playlist(self, playlist: Playlist) -> bool:
        return self.playlists.save_playlist(playlist)

    def load_playlist(self, playlist_id: str) -> Optional[Playlist]:
        return self.playlists.load_playlist(playlist_id)

    def delete_playlist(self, playlist_id: str) -> bool:
        return self.playlists.delete_playlist(playlist_id)

    def get_all_playlists(self) -> List[PlaylistIndexEntry]:
        return self.playlists.get_all_playlists()

    def add_song(self, playlist: Playlist, song: SongRecord) -> bool:
        return self.playlists.add_song(playlist, song)

    def remove_song(self, playlist: Playlist, item_id: str) -> bool:
        return self.playlists.remove_song(playlist, item_id)

    def create_default_playlist_from_cache(self) -> Optional[Playlist]:
        """Seed a first playlist from songs whose files are already cached"""
        songs = self.metadata.get_cached_songs_with_files(self.orchestrator.find_downloaded_file)
        return self.playlists.create_default_playlist(songs)

    # ------------------------------------------------------------------
    # Maintenance

    def check_dependencies(self) -> DependencyStatus:
        return self.locator.check_dependencies()

    def reinitialize_tools(self) -> DependencyStatus:
        """Forget cached tool lookups and resolve again"""
        self.locator.reinitialize()
        return self.locator.check_dependencies()

    def cleanup(self) -> Dict[str, int]:
        """
        Repair the playlist index and drop stale song metadata

        Returns:
            Counts of index corrections and removed metadata entries
        """
        return {
            'index_corrections': self.playlists.reconcile(),
            'stale_metadata': self.metadata.cleanup(self.orchestrator.find_downloaded_file),
        }

    @property
    def cache_directory(self) -> Path:
        return self.cache_resolver.resolve()


# Global service instance
_service: Optional[TubeShelfService] = None


def get_service() -> TubeShelfService:
    """
    Get the process-wide default service, creating it on first use

    Returns:
        TubeShelfService built from the global settings
    """
    global _service
    if _service is None:
        _service = TubeShelfService()
    return _service


def reset_service() -> None:
    """Drop the default service, e.g. after reloading settings"""
    global _service
    _service = None
