"""
Metadata extraction from yt-dlp JSON output

`yt-dlp --dump-json` prints one JSON document per item, one per line. Each
line is parsed on its own: a bad line is logged and skipped, and the rest of
the batch is still returned in input order.
"""

import json
from typing import Any, Dict, List

from ..core.exceptions import ParseFailureError
from ..utils.logger import get_logger
from .models import SongRecord, UNKNOWN_ARTIST, UNKNOWN_TITLE
from .urls import extract_item_id

logger = get_logger(__name__)

__all__ = ['build_metadata_arguments', 'parse_output', 'parse_line', 'extract_item_id']


def build_metadata_arguments(url: str) -> List[str]:
    """
    yt-dlp arguments for a metadata-only query

    `--flat-playlist` keeps playlist URLs from resolving every entry, which
    is why flat entries only carry `url` and not `webpage_url`.
    """
    return ["--dump-json", "--no-download", "--flat-playlist", url]


def _parse_duration(value: Any) -> int:
    if value is None:
        return 0
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def song_from_info(info: Dict[str, Any]) -> SongRecord:
    """
    Map one yt-dlp info dict to a SongRecord

    Raises:
        ParseFailureError: If no url can be resolved
    """
    url = _text(info.get('webpage_url')) or _text(info.get('url'))
    if not url:
        raise ParseFailureError("Entry has no webpage_url or url", details={'id': info.get('id')})

    return SongRecord(
        url=url,
        title=_text(info.get('title'), UNKNOWN_TITLE),
        artist=_text(info.get('uploader'), UNKNOWN_ARTIST),
        duration=_parse_duration(info.get('duration')),
        thumbnail_url=_text(info.get('thumbnail')),
        description=_text(info.get('description')),
    )


def parse_line(line: str) -> SongRecord:
    """
    Parse one line of tool output

    Raises:
        ParseFailureError: If the line is not a JSON object with a url
    """
    try:
        info = json.loads(line)
    except ValueError as e:
        raise ParseFailureError(f"Invalid JSON: {e}")

    if not isinstance(info, dict):
        raise ParseFailureError(f"Expected a JSON object, got {type(info).__name__}")

    return song_from_info(info)


def parse_output(raw_output: str) -> List[SongRecord]:
    """
    Parse newline-delimited JSON output into song records

    Args:
        raw_output: Captured stdout of `yt-dlp --dump-json`

    Returns:
        Songs in the order they appeared; malformed lines are skipped
    """
    songs: List[SongRecord] = []
    if not raw_output:
        return songs

    skipped = 0
    for line_number, line in enumerate(raw_output.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue

        try:
            songs.append(parse_line(line))
        except ParseFailureError as e:
            skipped += 1
            logger.warning(f"Skipping output line {line_number}: {e}")

    logger.debug(f"Parsed {len(songs)} songs, skipped {skipped} lines")
    return songs
