"""
External process runner

Processes are started with `subprocess.Popen`; background reader threads
drain stdout and stderr so the child never stalls on a full pipe. The
cooperative side never joins those threads: a scheduler task polls
`ProcessHandle.finished` at a fixed interval, delivers queued progress lines,
and reports `(output, exit_code)` through the completion callback once the
process has exited.
"""

import re
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from ..config.settings import Settings, get_settings
from ..core.scheduler import Scheduler, Sleep, Task
from ..utils.logger import get_logger

# Exit code reported when the executable could not be started at all
LAUNCH_FAILURE_EXIT_CODE = -1

# Exit code reported when a process was killed for running past its timeout
TIMEOUT_EXIT_CODE = -2

_PROGRESS_RE = re.compile(r'(\d{1,3}(?:\.\d+)?)%')

CompletionCallback = Callable[[str, int], None]
ProgressCallback = Callable[[str], None]


def is_progress_line(line: str, marker: str = "[download]") -> bool:
    """Check whether an output line is a fetch progress report"""
    return marker in line and '%' in line


def parse_progress_percent(line: str) -> Optional[float]:
    """
    Extract the percentage from a yt-dlp progress line

    Args:
        line: e.g. "[download]  42.3% of 3.51MiB at 1.2MiB/s ETA 00:02"

    Returns:
        Percentage as float, or None when the line carries none
    """
    match = _PROGRESS_RE.search(line)
    if not match:
        return None
    return min(100.0, float(match.group(1)))


@dataclass
class ProcessResult:
    """Outcome of an external process"""
    output: str
    exit_code: int
    error_output: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ProcessHandle:
    """
    A launched (or failed-to-launch) external process

    All state shared with the reader threads is guarded by a lock. A handle
    for a failed launch is finished from the start.

    The watcher thread owns the pipes: it closes them and reaps the child once
    both readers hit end of file, so a handle can be closed or abandoned while
    the process is still running.
    """

    def __init__(self, process: Optional[subprocess.Popen] = None,
                 progress_marker: Optional[str] = None, launch_error: str = ""):
        self.launch_error = launch_error
        self._process = process
        self._progress_marker = progress_marker
        self._lock = threading.Lock()
        self._lines: List[str] = []
        self._error_lines: List[str] = []
        self._progress: List[str] = []
        self._exit_code: Optional[int] = None
        self._finished = threading.Event()
        self._closed = False
        self.logger = get_logger(__name__)

        if process is None:
            self._exit_code = LAUNCH_FAILURE_EXIT_CODE
            self._finished.set()
        else:
            self._watcher = threading.Thread(target=self._watch, name=f"proc-{process.pid}", daemon=True)
            self._watcher.start()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def finished(self) -> bool:
        """Non-blocking completion check"""
        return self._finished.is_set()

    @property
    def exit_code(self) -> Optional[int]:
        with self._lock:
            return self._exit_code

    @property
    def output(self) -> str:
        with self._lock:
            return "\n".join(self._lines)

    def drain_progress(self) -> List[str]:
        """Return and clear progress lines queued since the last call"""
        with self._lock:
            lines, self._progress = self._progress, []
        return lines

    def result(self) -> ProcessResult:
        with self._lock:
            exit_code = self._exit_code if self._exit_code is not None else LAUNCH_FAILURE_EXIT_CODE
            return ProcessResult(
                output="\n".join(self._lines),
                exit_code=exit_code,
                error_output="\n".join(self._error_lines) or self.launch_error
            )

    def _watch(self) -> None:
        """Reader thread: drain both pipes, then record the exit code"""
        stderr_reader = threading.Thread(target=self._read_stderr, daemon=True)
        stderr_reader.start()

        try:
            for raw_line in self._process.stdout:
                line = raw_line.rstrip('\r\n')
                with self._lock:
                    self._lines.append(line)
                    if self._progress_marker and is_progress_line(line, self._progress_marker):
                        self._progress.append(line)
        except (OSError, ValueError) as e:
            self.logger.debug(f"stdout reader stopped: {e}")
        finally:
            stderr_reader.join()
            exit_code = self._process.wait()
            self._close_pipes()
            with self._lock:
                self._exit_code = exit_code
            self._finished.set()

    def _read_stderr(self) -> None:
        try:
            for raw_line in self._process.stderr:
                with self._lock:
                    self._error_lines.append(raw_line.rstrip('\r\n'))
        except (OSError, ValueError) as e:
            self.logger.debug(f"stderr reader stopped: {e}")

    def _close_pipes(self) -> None:
        for stream in (self._process.stdout, self._process.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError as e:
                    self.logger.debug(f"Error closing pipe: {e}")

    def kill(self) -> None:
        """Terminate a running process; its readers then see end of file"""
        if self._process is None or self.finished:
            return
        try:
            self._process.kill()
        except OSError as e:
            self.logger.debug(f"Error killing process {self._process.pid}: {e}")

    def close(self) -> None:
        """
        Release the handle; safe to call repeatedly

        The pipes belong to the watcher thread while the process runs. A
        handle closed early leaves the process running to completion and the
        watcher cleans up after it.
        """
        if self._closed:
            return
        self._closed = True

        if self._process is not None and not self.finished:
            self.logger.debug(f"Closing handle of running process {self._process.pid}")


class ProcessRunner:
    """
    Launches external executables without blocking the cooperative thread

    The completion callback receives the accumulated stdout and the exit
    code. Launch failures complete immediately with exit code -1.
    """

    def __init__(self, scheduler: Scheduler, settings: Optional[Settings] = None,
                 poll_interval: Optional[float] = None):
        """
        Initialize process runner

        Args:
            scheduler: Scheduler that drives the polling tasks
            settings: Settings instance, defaults to the global settings
            poll_interval: Seconds between completion checks
        """
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self.poll_interval = poll_interval if poll_interval is not None else self.settings.download.poll_interval
        self.progress_marker = self.settings.download.progress_marker
        self.logger = get_logger(__name__)

    def start(self, executable: str, arguments: Sequence[str],
              working_directory: Optional[Union[str, Path]] = None,
              capture_progress: bool = False) -> ProcessHandle:
        """
        Launch a process and return its handle immediately

        Args:
            executable: Path or command name
            arguments: Argument list (not a shell string)
            working_directory: Directory to run in, None for the current one
            capture_progress: Queue progress-marker lines for delivery

        Returns:
            ProcessHandle, already finished if the launch failed
        """
        command = [executable, *arguments]
        self.logger.debug(f"Launching: {subprocess.list2cmdline(command)}")

        try:
            process = subprocess.Popen(
                command,
                cwd=str(working_directory) if working_directory else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                errors='replace',
                bufsize=1,
                creationflags=getattr(subprocess, 'CREATE_NO_WINDOW', 0)
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            self.logger.warning(f"Failed to launch {executable}: {e}")
            return ProcessHandle(launch_error=str(e))

        return ProcessHandle(process, self.progress_marker if capture_progress else None)

    def run(self, executable: str, arguments: Sequence[str],
            working_directory: Optional[Union[str, Path]] = None,
            on_complete: Optional[CompletionCallback] = None,
            on_progress: Optional[ProgressCallback] = None,
            name: Optional[str] = None,
            timeout: Optional[float] = None) -> Task:
        """
        Run a process as a cooperative task

        Args:
            executable: Path or command name
            arguments: Argument list
            working_directory: Directory to run in
            on_complete: Called with (output, exit_code) on the scheduler thread
            on_progress: Called with each progress line on the scheduler thread
            name: Task name for logs
            timeout: Seconds before the process is killed and completes with
                TIMEOUT_EXIT_CODE, None to wait indefinitely

        Returns:
            Task whose result is the ProcessResult
        """
        routine = self._run_routine(executable, list(arguments), working_directory, on_complete, on_progress, timeout)
        return self.scheduler.start(routine, name=name or f"run {Path(executable).name}")

    def _run_routine(self, executable, arguments, working_directory, on_complete, on_progress, timeout):
        handle = self.start(executable, arguments, working_directory, capture_progress=on_progress is not None)
        deadline = None if timeout is None else self.scheduler.clock() + timeout
        timed_out = False
        try:
            while not handle.finished:
                if deadline is not None and self.scheduler.clock() >= deadline:
                    timed_out = True
                    break
                self._deliver_progress(handle, on_progress)
                yield Sleep(self.poll_interval)

            self._deliver_progress(handle, on_progress)
            if timed_out:
                handle.kill()
                self.logger.warning(f"{Path(executable).name} timed out after {timeout}s and was killed")
                partial = handle.result()
                result = ProcessResult(partial.output, TIMEOUT_EXIT_CODE, partial.error_output)
            else:
                result = handle.result()
        finally:
            handle.close()

        if result.exit_code != 0:
            detail = result.error_output.strip().splitlines()
            self.logger.debug(
                f"{Path(executable).name} exited with {result.exit_code}"
                + (f": {detail[-1]}" if detail else "")
            )

        if on_complete is not None:
            try:
                on_complete(result.output, result.exit_code)
            except Exception as e:
                self.logger.error(f"Completion callback failed: {e}")

        return result

    def _deliver_progress(self, handle: ProcessHandle, on_progress: Optional[ProgressCallback]) -> None:
        if on_progress is None:
            return
        for line in handle.drain_progress():
            try:
                on_progress(line)
            except Exception as e:
                self.logger.error(f"Progress callback failed: {e}")
