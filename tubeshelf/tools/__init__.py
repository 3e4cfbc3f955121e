"""
External tools package
Locating yt-dlp/ffmpeg and running them without blocking the scheduler
"""

from .locator import ToolLocator, DependencyStatus, YT_DLP, FFMPEG
from .runner import (
    ProcessRunner,
    ProcessHandle,
    ProcessResult,
    LAUNCH_FAILURE_EXIT_CODE,
    is_progress_line,
    parse_progress_percent
)

__all__ = [
    'ToolLocator',
    'DependencyStatus',
    'YT_DLP',
    'FFMPEG',
    'ProcessRunner',
    'ProcessHandle',
    'ProcessResult',
    'LAUNCH_FAILURE_EXIT_CODE',
    'is_progress_line',
    'parse_progress_percent'
]
