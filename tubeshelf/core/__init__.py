"""
Core package
Cooperative scheduler and the exception hierarchy
"""

from .exceptions import (
    TubeShelfError,
    ToolUnavailableError,
    ParseFailureError,
    StorageError,
    ValidationError
)
from .scheduler import Scheduler, Task, TaskState, Sleep, WaitUntil

__all__ = [
    'TubeShelfError',
    'ToolUnavailableError',
    'ParseFailureError',
    'StorageError',
    'ValidationError',
    'Scheduler',
    'Task',
    'TaskState',
    'Sleep',
    'WaitUntil'
]
