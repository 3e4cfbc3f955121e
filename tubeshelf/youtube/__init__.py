"""
YouTube package
Song records, yt-dlp output parsing, downloads and the service facade

The download orchestrator and the service live in `tubeshelf.youtube.downloader`
and `tubeshelf.youtube.service`; they depend on the storage package, which in
turn uses the models exported here, so they are imported from their modules.
"""

from .models import SongRecord, DownloadState, UNKNOWN_TITLE, UNKNOWN_ARTIST
from .urls import extract_item_id, build_watch_url
from .extractor import parse_output, parse_line, build_metadata_arguments

__all__ = [
    'SongRecord',
    'DownloadState',
    'UNKNOWN_TITLE',
    'UNKNOWN_ARTIST',
    'extract_item_id',
    'build_watch_url',
    'parse_output',
    'parse_line',
    'build_metadata_arguments'
]
