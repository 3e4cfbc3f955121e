"""
YouTube URL helpers

The item id (the platform video id) is the key for playlist membership and
for cached file names, so every module derives it through `extract_item_id`.
"""

import re

# youtube.com/watch?v=ID&... (also www., m. and music. hosts)
_WATCH_RE = re.compile(r'youtube\.com/watch\?(?:[^#]*?&)?v=([^&#]+)', re.IGNORECASE)

# youtu.be/ID?...
_SHORT_RE = re.compile(r'youtu\.be/([^/?&#]+)', re.IGNORECASE)


def extract_item_id(url: str) -> str:
    """
    Extract the video id from a YouTube URL

    Args:
        url: Watch URL (``...watch?v=ID&...``) or short link (``youtu.be/ID?...``)

    Returns:
        Video id, or an empty string if the URL has neither shape
    """
    if not url:
        return ""

    match = _WATCH_RE.search(url)
    if match:
        return match.group(1)

    match = _SHORT_RE.search(url)
    if match:
        return match.group(1)

    return ""


def build_watch_url(item_id: str) -> str:
    """Canonical watch URL for a video id"""
    return f"https://www.youtube.com/watch?v={item_id}"
