"""
Cooperative scheduler for TubeShelf

All orchestration runs on a single thread as generator-based tasks. A task
advances one step each time the host calls `Scheduler.tick()`, and suspends
by yielding one of:

- ``None``: resume on the next tick
- ``Sleep(seconds)``: resume once the delay has elapsed
- ``WaitUntil(predicate)``: resume once ``predicate()`` is true
- another ``Task``: resume when it finishes; its result is sent back in

Long-running work (external processes) happens outside this thread; tasks
only poll completion flags, so a tick never blocks.

Example:
    def routine():
        yield Sleep(0.5)
        child_result = yield scheduler.start(other_routine())
        return child_result

    task = scheduler.start(routine())
    while not task.done:
        scheduler.tick()
"""

import inspect
import time
from enum import Enum
from typing import Any, Callable, Generator, List, Optional

from ..utils.logger import get_logger


class Sleep:
    """Suspend the current task for a number of seconds"""

    __slots__ = ('seconds',)

    def __init__(self, seconds: float):
        self.seconds = max(0.0, float(seconds))

    def __repr__(self) -> str:
        return f"Sleep({self.seconds})"


class WaitUntil:
    """Suspend the current task until a predicate returns true"""

    __slots__ = ('predicate',)

    def __init__(self, predicate: Callable[[], bool]):
        self.predicate = predicate


class TaskState(Enum):
    """Lifecycle of a scheduled task"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Task:
    """
    Handle for a routine running on a Scheduler

    Tasks are created through `Scheduler.start()`. The routine's return
    value becomes `result`; an exception escaping the routine is logged and
    stored in `exception`, and the task is marked failed.
    """

    def __init__(self, routine: Generator, name: str, clock: Callable[[], float]):
        self.name = name
        self.state = TaskState.RUNNING
        self.result: Any = None
        self.exception: Optional[BaseException] = None

        self._routine = routine
        self._clock = clock
        self._send_value: Any = None
        self._wake_at: Optional[float] = None
        self._predicate: Optional[Callable[[], bool]] = None
        self._waiting_on: Optional['Task'] = None
        self._done_callbacks: List[Callable[['Task'], None]] = []
        self.logger = get_logger(__name__)

    @property
    def done(self) -> bool:
        return self.state is not TaskState.RUNNING

    @property
    def failed(self) -> bool:
        return self.state is TaskState.FAILED

    def add_done_callback(self, callback: Callable[['Task'], None]) -> None:
        """
        Register a callback invoked with this task once it finishes

        Callbacks registered after completion run immediately.
        """
        if self.done:
            self._run_callback(callback)
        else:
            self._done_callbacks.append(callback)

    def _is_ready(self, now: float) -> bool:
        if self._waiting_on is not None:
            return self._waiting_on.done
        if self._predicate is not None:
            return bool(self._predicate())
        if self._wake_at is not None:
            return now >= self._wake_at
        return True

    def _step(self) -> None:
        """Advance the routine to its next suspension point"""
        try:
            now = self._clock()
            if not self._is_ready(now):
                return

            if self._waiting_on is not None:
                self._send_value = self._waiting_on.result
            self._wake_at = None
            self._predicate = None
            self._waiting_on = None

            value, self._send_value = self._send_value, None
            yielded = self._routine.send(value)
        except StopIteration as stop:
            self._finish(TaskState.COMPLETED, result=stop.value)
            return
        except Exception as e:
            self.logger.error(f"Task '{self.name}' failed: {e}")
            self._finish(TaskState.FAILED, exception=e)
            return

        self._suspend_on(yielded)

    def _suspend_on(self, yielded: Any) -> None:
        if yielded is None:
            return
        if isinstance(yielded, Sleep):
            self._wake_at = self._clock() + yielded.seconds
        elif isinstance(yielded, WaitUntil):
            self._predicate = yielded.predicate
        elif isinstance(yielded, Task):
            self._waiting_on = yielded
        else:
            error = TypeError(f"Task '{self.name}' yielded unsupported value {yielded!r}")
            self.logger.error(str(error))
            self._routine.close()
            self._finish(TaskState.FAILED, exception=error)

    def _finish(self, state: TaskState, result: Any = None, exception: Optional[BaseException] = None) -> None:
        self.state = state
        self.result = result
        self.exception = exception

        callbacks, self._done_callbacks = self._done_callbacks, []
        for callback in callbacks:
            self._run_callback(callback)

    def _run_callback(self, callback: Callable[['Task'], None]) -> None:
        try:
            callback(self)
        except Exception as e:
            self.logger.error(f"Done callback for task '{self.name}' raised: {e}")

    def __repr__(self) -> str:
        return f"Task({self.name!r}, {self.state.value})"


class Scheduler:
    """
    Single-threaded cooperative scheduler

    The host drives the scheduler by calling `tick()` periodically (once per
    frame, or in a loop via `run_until_complete()`). Tasks started during a
    tick take their first step on the following tick.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize scheduler

        Args:
            clock: Monotonic time source in seconds, injectable for tests
        """
        self.clock = clock
        self._tasks: List[Task] = []
        self._counter = 0
        self.logger = get_logger(__name__)

    def start(self, routine: Generator, name: Optional[str] = None) -> Task:
        """
        Schedule a generator routine

        Args:
            routine: Generator object (the result of calling a generator function)
            name: Optional task name used in log messages

        Returns:
            Task handle

        Raises:
            TypeError: If routine is not a generator
        """
        if not inspect.isgenerator(routine):
            raise TypeError(f"Scheduler.start() expects a generator, got {type(routine).__name__}")

        self._counter += 1
        task = Task(routine, name or f"task-{self._counter}", self.clock)
        self._tasks.append(task)
        self.logger.debug(f"Scheduled {task.name}")
        return task

    def tick(self) -> int:
        """
        Advance every ready task by one step

        Returns:
            Number of tasks still pending after this tick
        """
        for task in list(self._tasks):
            if not task.done:
                task._step()

        self._tasks = [task for task in self._tasks if not task.done]
        return len(self._tasks)

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def has_pending(self) -> bool:
        return bool(self._tasks)

    def run_until_complete(
        self,
        task: Task,
        timeout: Optional[float] = None,
        interval: float = 0.01,
        sleep: Callable[[float], None] = time.sleep
    ) -> bool:
        """
        Host loop helper: tick until a task finishes

        Intended for command-line hosts that have no frame loop of their own.

        Args:
            task: Task to wait for
            timeout: Maximum seconds to wait, None for no limit
            interval: Sleep between ticks
            sleep: Sleep function, injectable for tests

        Returns:
            True if the task finished, False on timeout
        """
        deadline = None if timeout is None else self.clock() + timeout

        while not task.done:
            self.tick()
            if task.done:
                break
            if deadline is not None and self.clock() >= deadline:
                self.logger.warning(f"Timed out waiting for {task.name}")
                return False
            sleep(interval)

        return True

    def run_until_idle(self, timeout: Optional[float] = None, interval: float = 0.01,
                       sleep: Callable[[float], None] = time.sleep) -> bool:
        """Tick until no tasks remain; returns False on timeout"""
        deadline = None if timeout is None else self.clock() + timeout

        while self.tick():
            if deadline is not None and self.clock() >= deadline:
                return False
            sleep(interval)

        return True
