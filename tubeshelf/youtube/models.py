"""
Data models for YouTube songs

A SongRecord is one remote media item: its identity (url and the derived
item id), display metadata, and the download lifecycle flags driven by the
download orchestrator. The flags are stored separately (and persisted that
way in playlist files); `state` folds them into a single DownloadState.

Lifecycle:
    NOT_FETCHED -> FETCHING -> FETCHED
                            -> FAILED

FAILED is terminal until the caller explicitly requests another download.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..utils.helpers import format_duration, get_current_timestamp
from .urls import extract_item_id

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ARTIST = "Unknown Artist"


class DownloadState(Enum):
    """Download lifecycle state of a song"""
    NOT_FETCHED = "not_fetched"
    FETCHING = "fetching"
    FETCHED = "fetched"
    FAILED = "failed"


@dataclass
class SongRecord:
    """
    One YouTube item plus its local download state

    Attributes:
        url: Canonical watch URL, stable across calls
        title: Video title
        artist: Uploader or channel name
        duration: Length in whole seconds, 0 if unknown
        is_downloaded: Media file resolved into the cache
        download_failed: Last download attempt failed
        is_downloading: A download is in flight
        cached_file_path: Resolved media file, empty until fetched
    """
    url: str
    title: str = UNKNOWN_TITLE
    artist: str = UNKNOWN_ARTIST
    duration: int = 0
    thumbnail_url: str = ""
    description: str = ""

    is_downloaded: bool = False
    download_failed: bool = False
    is_downloading: bool = field(default=False, compare=False)
    cached_file_path: str = ""
    download_progress: str = field(default="", compare=False)
    file_size: int = 0
    downloaded_at: Optional[str] = None

    @property
    def item_id(self) -> str:
        """Video id derived from the url"""
        return extract_item_id(self.url)

    @property
    def state(self) -> DownloadState:
        if self.is_downloading:
            return DownloadState.FETCHING
        if self.is_downloaded:
            return DownloadState.FETCHED
        if self.download_failed:
            return DownloadState.FAILED
        return DownloadState.NOT_FETCHED

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.title}"

    @property
    def duration_str(self) -> str:
        return format_duration(self.duration) if self.duration > 0 else "?:??"

    def is_ready_to_play(self) -> bool:
        """Downloaded and the cached file is still on disk"""
        return self.is_downloaded and bool(self.cached_file_path) and os.path.isfile(self.cached_file_path)

    def mark_fetching(self) -> None:
        self.is_downloading = True
        self.download_failed = False
        self.download_progress = ""

    def mark_fetched(self, file_path: str) -> None:
        """
        Record a resolved media file

        Args:
            file_path: Path of the file found in the cache directory
        """
        self.is_downloading = False
        self.download_failed = False
        self.is_downloaded = True
        self.cached_file_path = file_path
        self.downloaded_at = get_current_timestamp()
        try:
            self.file_size = os.path.getsize(file_path)
        except OSError:
            self.file_size = 0

    def mark_failed(self) -> None:
        self.is_downloading = False
        self.is_downloaded = False
        self.download_failed = True
        self.cached_file_path = ""

    def reset_download_state(self) -> None:
        """Return to NOT_FETCHED, e.g. after the cached file was deleted"""
        self.is_downloading = False
        self.is_downloaded = False
        self.download_failed = False
        self.cached_file_path = ""
        self.download_progress = ""
        self.file_size = 0
        self.downloaded_at = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize for playlist and metadata files

        `is_downloading` is not persisted; a reloaded song is never in FETCHING.
        """
        return {
            'url': self.url,
            'title': self.title,
            'artist': self.artist,
            'duration': self.duration,
            'thumbnail_url': self.thumbnail_url,
            'description': self.description,
            'is_downloaded': self.is_downloaded,
            'download_failed': self.download_failed,
            'cached_file_path': self.cached_file_path,
            'file_size': self.file_size,
            'downloaded_at': self.downloaded_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SongRecord':
        """
        Build a song from persisted data, tolerating missing keys

        Raises:
            ValueError: If the data has no url
        """
        url = data.get('url') or ""
        if not url:
            raise ValueError("Song data has no url")

        try:
            duration = int(data.get('duration') or 0)
        except (TypeError, ValueError):
            duration = 0

        return cls(
            url=url,
            title=UNKNOWN_TITLE if data.get('title') is None else data['title'],
            artist=UNKNOWN_ARTIST if data.get('artist') is None else data['artist'],
            duration=duration,
            thumbnail_url=data.get('thumbnail_url') or "",
            description=data.get('description') or "",
            is_downloaded=bool(data.get('is_downloaded', False)),
            download_failed=bool(data.get('download_failed', False)),
            cached_file_path=data.get('cached_file_path') or "",
            file_size=int(data.get('file_size') or 0),
            downloaded_at=data.get('downloaded_at'),
        )

    def __str__(self) -> str:
        return f"{self.display_name} [{self.item_id or 'no id'}] ({self.state.value})"
