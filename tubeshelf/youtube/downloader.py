"""
Download orchestration for YouTube songs

Drives the per-song state machine (NOT_FETCHED -> FETCHING -> FETCHED or
FAILED) on the cooperative scheduler:

1. Validate the song and resolve yt-dlp and ffmpeg
2. Run yt-dlp in audio extraction mode with an output template of
   `<cacheDir>/<itemId>.%(ext)s`
3. On exit code 0, scan the cache directory for the produced file
4. FETCHED only when the tool succeeded AND a file was found

Cached file lookup is deterministic: exact `<itemId><ext>` names are tried
in AUDIO_EXTENSIONS order first, then any file starting with the item id,
ordered by the same extension preference and then by name.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..config.settings import Settings, get_settings
from ..core.exceptions import ToolUnavailableError, ValidationError
from ..core.scheduler import Scheduler, Sleep, Task
from ..storage.cache_dir import CacheDirectoryResolver
from ..tools.locator import ToolLocator, YT_DLP, FFMPEG
from ..tools.runner import ProcessRunner, ProcessResult, parse_progress_percent
from ..utils.logger import get_logger
from .models import SongRecord

# Audio containers yt-dlp may leave behind, in lookup preference order
AUDIO_EXTENSIONS = ('.mp3', '.m4a', '.webm', '.opus')

ProgressCallback = Callable[[str], None]
CompletionCallback = Callable[[bool], None]


@dataclass
class DownloadResult:
    """
    Outcome of one download request

    Attributes:
        success: Song reached FETCHED
        item_id: Video id of the song
        file_path: Resolved cached file (None if failed)
        exit_code: yt-dlp exit code (-1 if it never ran)
        error_message: Reason for failure
    """
    success: bool
    item_id: str
    file_path: Optional[str] = None
    exit_code: int = -1
    error_message: Optional[str] = None


def find_cached_file(cache_dir: Path, item_id: str) -> Optional[Path]:
    """
    Locate the media file for an item id in a directory

    Args:
        cache_dir: Directory to scan
        item_id: Video id used as the filename prefix

    Returns:
        First match in extension preference order, None if nothing matches
    """
    if not item_id:
        return None

    for extension in AUDIO_EXTENSIONS:
        candidate = cache_dir / f"{item_id}{extension}"
        if candidate.is_file():
            return candidate

    try:
        candidates = [
            entry for entry in cache_dir.iterdir()
            if entry.name.startswith(item_id)
            and entry.suffix.lower() in AUDIO_EXTENSIONS
            and entry.is_file()
        ]
    except OSError:
        return None

    if not candidates:
        return None

    candidates.sort(key=lambda p: (AUDIO_EXTENSIONS.index(p.suffix.lower()), p.name))
    return candidates[0]


class DownloadOrchestrator:
    """
    Fetches songs into the cache directory

    Each request is its own scheduler task and only mutates its own song;
    concurrent requests for different songs may interleave freely.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        runner: ProcessRunner,
        locator: ToolLocator,
        cache_resolver: CacheDirectoryResolver,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self.scheduler = scheduler
        self.runner = runner
        self.locator = locator
        self.cache_resolver = cache_resolver

    def build_download_arguments(self, song: SongRecord, cache_dir: Path,
                                 ffmpeg_path: Optional[str] = None) -> List[str]:
        """
        yt-dlp arguments for audio extraction into the cache

        Args:
            song: Song to fetch
            cache_dir: Output directory
            ffmpeg_path: ffmpeg location when it is not simply on PATH

        Returns:
            Argument list
        """
        arguments = [
            "-x",
            "--audio-format", self.settings.download.audio_format,
            "--audio-quality", str(self.settings.download.audio_quality),
            "--newline",
            "--no-playlist",
            "-o", str(cache_dir / f"{song.item_id}.%(ext)s"),
        ]
        if ffmpeg_path and os.path.dirname(ffmpeg_path):
            arguments.extend(["--ffmpeg-location", ffmpeg_path])
        arguments.append(song.url)
        return arguments

    def find_downloaded_file(self, item_id: str) -> Optional[Path]:
        """Locate a cached media file for an item id"""
        return find_cached_file(self.cache_resolver.resolve(), item_id)

    def _validate(self, song: SongRecord) -> None:
        if song is None or not song.url:
            raise ValidationError("Song has no url")
        if not song.item_id:
            raise ValidationError(f"Cannot derive an item id from {song.url}", details={'url': song.url})
        if song.is_downloading:
            raise ValidationError(f"Download already in progress for {song.item_id}")

    def download_song(
        self,
        song: SongRecord,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None
    ) -> Optional[Task]:
        """
        Start downloading a song

        Rejected requests (invalid song, download already running, missing
        tools) leave the song's state untouched, call on_complete(False) and
        return None.

        Args:
            song: Song to fetch; its flags are updated in place
            on_progress: Receives yt-dlp progress lines
            on_complete: Receives True when the song reached FETCHED

        Returns:
            Task whose result is a DownloadResult, or None if rejected
        """
        try:
            self._validate(song)
            yt_dlp = self.locator.require(YT_DLP)
            ffmpeg = self.locator.require(FFMPEG)
        except (ValidationError, ToolUnavailableError) as e:
            self.logger.warning(f"Download not started: {e}")
            self._notify(on_complete, False)
            return None

        cache_dir = self.cache_resolver.resolve()
        arguments = self.build_download_arguments(song, cache_dir, ffmpeg)

        song.mark_fetching()
        self.logger.info(f"Downloading {song.display_name} ({song.item_id})")

        routine = self._download_routine(song, yt_dlp, arguments, cache_dir, on_progress, on_complete)
        return self.scheduler.start(routine, name=f"download {song.item_id}")

    def _download_routine(self, song, executable, arguments, cache_dir, on_progress, on_complete):
        def progress(line: str) -> None:
            percent = parse_progress_percent(line)
            if percent is not None:
                song.download_progress = f"{percent:.1f}%"
            if on_progress is not None:
                on_progress(line)

        process_task = self.runner.run(
            executable, arguments, working_directory=cache_dir,
            on_progress=progress, name=f"yt-dlp {song.item_id}",
            timeout=self.settings.download.download_timeout
        )
        process_result: Optional[ProcessResult] = yield process_task
        exit_code = process_result.exit_code if process_result else -1

        result = self._resolve_outcome(song, exit_code, cache_dir)
        if not result.success and process_result and process_result.error_output:
            self.logger.debug(f"yt-dlp stderr for {song.item_id}: {process_result.error_output.strip()[-500:]}")

        self._notify(on_complete, result.success)
        return result

    def _resolve_outcome(self, song: SongRecord, exit_code: int, cache_dir: Path) -> DownloadResult:
        """Apply the FETCHING -> FETCHED / FAILED transition"""
        if exit_code != 0:
            song.mark_failed()
            self.logger.warning(f"Download failed for {song.item_id}: yt-dlp exited with {exit_code}")
            return DownloadResult(False, song.item_id, exit_code=exit_code,
                                  error_message=f"yt-dlp exited with {exit_code}")

        file_path = find_cached_file(cache_dir, song.item_id)
        if file_path is None:
            song.mark_failed()
            self.logger.warning(f"yt-dlp reported success but no file found for {song.item_id} in {cache_dir}")
            return DownloadResult(False, song.item_id, exit_code=exit_code,
                                  error_message="No downloaded file found")

        song.mark_fetched(str(file_path))
        self.logger.info(f"Downloaded {song.display_name} -> {file_path.name}")
        return DownloadResult(True, song.item_id, file_path=str(file_path), exit_code=exit_code)

    def _notify(self, on_complete: Optional[CompletionCallback], success: bool) -> None:
        if on_complete is None:
            return
        try:
            on_complete(success)
        except Exception as e:
            self.logger.error(f"Download completion callback failed: {e}")

    def download_songs(
        self,
        songs: Sequence[SongRecord],
        on_song_complete: Optional[Callable[[SongRecord, bool], None]] = None,
        on_finished: Optional[Callable[[int, int], None]] = None,
        max_concurrent: Optional[int] = None
    ) -> Task:
        """
        Download several songs with bounded concurrency

        Songs already downloaded are skipped. At most `max_concurrent`
        downloads are in flight; the batch task polls every
        `download.batch_poll_interval` seconds.

        Args:
            songs: Songs to fetch
            on_song_complete: Called with (song, success) per song
            on_finished: Called with (succeeded, failed) counts at the end
            max_concurrent: Override for download.max_concurrent

        Returns:
            Task whose result is a list of (song, success) tuples
        """
        limit = max(1, max_concurrent or self.settings.download.max_concurrent)
        routine = self._batch_routine(list(songs), limit, on_song_complete, on_finished)
        return self.scheduler.start(routine, name=f"batch of {len(songs)}")

    def _batch_routine(self, songs, limit, on_song_complete, on_finished):
        pending = []
        seen = set()
        for song in songs:
            if song.is_downloaded or song.item_id in seen:
                continue
            seen.add(song.item_id)
            pending.append(song)

        outcomes = []
        active: List[Task] = []

        def record(song: SongRecord):
            def done(success: bool) -> None:
                outcomes.append((song, success))
                if on_song_complete is not None:
                    on_song_complete(song, success)
            return done

        while pending or active:
            active = [task for task in active if not task.done]
            while pending and len(active) < limit:
                song = pending.pop(0)
                task = self.download_song(song, on_complete=record(song))
                if task is not None:
                    active.append(task)
            if active or pending:
                yield Sleep(self.settings.download.batch_poll_interval)

        succeeded = sum(1 for _, success in outcomes if success)
        failed = len(outcomes) - succeeded
        self.logger.info(f"Batch finished: {succeeded} downloaded, {failed} failed")

        if on_finished is not None:
            try:
                on_finished(succeeded, failed)
            except Exception as e:
                self.logger.error(f"Batch completion callback failed: {e}")

        return outcomes
