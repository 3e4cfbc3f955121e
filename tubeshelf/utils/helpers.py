"""
Helper utilities for TubeShelf
Formatting, timestamps and JSON file handling shared across modules
"""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

SIZE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB')


def format_duration(seconds: Union[int, float]) -> str:
    """Format seconds as M:SS, or H:MM:SS from one hour up"""
    if seconds < 0:
        return "0:00"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_file_size(size_bytes: int) -> str:
    """Format a byte count with a binary unit, e.g. "3.4 MB" """
    if size_bytes < 1024:
        return f"{max(0, int(size_bytes))} B"

    size = float(size_bytes)
    for unit in SIZE_UNITS[1:]:
        size /= 1024
        if size < 1024 or unit == SIZE_UNITS[-1]:
            return f"{size:.1f} {unit}"


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Shorten text for a single terminal line

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Appended when the text was cut
    """
    if len(text) <= max_length:
        return text
    return text[:max(0, max_length - len(suffix))] + suffix


def get_current_timestamp() -> str:
    """Get current timestamp in ISO format"""
    return datetime.now().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO timestamp written by this package

    Args:
        value: ISO string, datetime or None

    Returns:
        datetime or None when the value is missing or unparseable
    """
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def read_json_file(path: Union[str, Path]) -> Any:
    """
    Read and decode a JSON file

    Empty files decode to None so callers can treat them like missing data.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the content is not valid JSON
    """
    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()
    if not content.strip():
        return None
    return json.loads(content)


def write_json_atomic(path: Union[str, Path], data: Any) -> None:
    """
    Write JSON to a file through a temporary file and an atomic replace

    A crash mid-write leaves the previous file content in place.

    Args:
        path: Destination file
        data: JSON-serialisable data

    Raises:
        OSError: If the file cannot be written
        TypeError: If the data is not serialisable
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(temp_name, path)
    except BaseException:
        try:
            os.unlink(temp_name)
        except OSError:
            pass
        raise
