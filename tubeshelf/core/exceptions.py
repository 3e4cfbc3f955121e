"""
Exception classes for TubeShelf.

These are raised inside a subsystem and converted to sentinel return values
(None, False, empty list) plus a log entry at its public methods. Callers of
the public API never need to catch them.

Exception Hierarchy:
    TubeShelfError (base)
        ToolUnavailableError - yt-dlp or ffmpeg cannot be located or invoked
        ParseFailureError - a line of tool output could not be turned into a song
        StorageError - playlist, index or metadata file could not be read or written
        ValidationError - caller input was rejected
"""

from typing import Any, Dict, Optional


class TubeShelfError(Exception):
    """
    Base exception for all TubeShelf errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g. url, path).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ToolUnavailableError(TubeShelfError):
    """
    Raised when an external tool cannot be located.

    Example:
        raise ToolUnavailableError(
            "yt-dlp not found",
            details={'tool': 'yt-dlp', 'tools_directory': '/path/to/Tools'}
        )
    """
    pass


class ParseFailureError(TubeShelfError):
    """Raised for a single line of tool output that is not a usable song record."""
    pass


class StorageError(TubeShelfError):
    """
    Raised when a JSON file cannot be read, decoded or written.

    Common causes:
        - Permission denied on the cache directory
        - Truncated or hand-edited playlist file
        - Disk full while writing the index
    """
    pass


class ValidationError(TubeShelfError):
    """Raised when caller input is rejected (empty name, empty url, duplicate song)."""
    pass
