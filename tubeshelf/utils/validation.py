"""
Input validation utilities
"""
import re
from typing import Optional, Tuple

PLAYLIST_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{1,64}$')
MAX_PLAYLIST_NAME_LENGTH = 100


def validate_youtube_url(url: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a single-video YouTube URL

    Args:
        url: URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    from ..youtube.extractor import extract_item_id

    if not url or not url.strip():
        return False, "URL cannot be empty"

    if not url.startswith(('http://', 'https://')):
        return False, "URL must start with http:// or https://"

    if not extract_item_id(url):
        return False, "Not a recognised YouTube video URL"

    return True, None


def validate_playlist_name(name: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a playlist name

    Args:
        name: Proposed playlist name

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not name or not name.strip():
        return False, "Playlist name cannot be empty"

    if len(name.strip()) > MAX_PLAYLIST_NAME_LENGTH:
        return False, f"Playlist name cannot exceed {MAX_PLAYLIST_NAME_LENGTH} characters"

    return True, None


def validate_playlist_id(playlist_id: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a playlist id before it is turned into a file name

    Args:
        playlist_id: Playlist id

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not playlist_id:
        return False, "Playlist id cannot be empty"

    if not PLAYLIST_ID_PATTERN.match(playlist_id):
        return False, f"Invalid playlist id: {playlist_id}"

    return True, None
