"""Test tool location and external process running"""

import os
import subprocess
import sys
import time
import pytest
from pathlib import Path
from unittest.mock import Mock, patch

from tubeshelf.core.exceptions import ToolUnavailableError
from tubeshelf.core.scheduler import Scheduler
from tubeshelf.tools.locator import FFMPEG, YT_DLP, ToolLocator
from tubeshelf.tools.runner import (
    LAUNCH_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    ProcessHandle,
    ProcessRunner,
    is_progress_line,
    parse_progress_percent
)


@pytest.fixture
def locator(test_settings):
    return ToolLocator(test_settings)


class TestToolLocator:
    """Test executable resolution"""

    def test_prefers_tools_directory(self, locator):
        tools_dir = locator.ensure_tools_directory()
        binary = tools_dir / locator._executable_filename("yt-dlp")
        binary.write_text("")

        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            assert locator.locate(YT_DLP) == str(binary)
            mock_run.assert_not_called()

    def test_falls_back_to_path_probe(self, locator):
        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="2024.01.01\n")
            assert locator.locate(YT_DLP) == "yt-dlp"

            args, kwargs = mock_run.call_args
            assert args[0] == ["yt-dlp", "--version"]
            assert kwargs['timeout'] == 5.0

    def test_ffmpeg_uses_single_dash_version_flag(self, locator):
        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout="ffmpeg version 6\n")
            assert locator.locate(FFMPEG) == "ffmpeg"
            assert mock_run.call_args[0][0] == ["ffmpeg", "-version"]

    def test_probe_timeout_means_unavailable(self, locator):
        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(["yt-dlp", "--version"], 5.0)
            assert locator.locate(YT_DLP) is None

            with pytest.raises(ToolUnavailableError):
                locator.require(YT_DLP)

    def test_missing_and_failing_tools(self, locator):
        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            mock_run.side_effect = FileNotFoundError()
            assert locator.locate(YT_DLP) is None

        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            mock_run.return_value = Mock(returncode=1, stdout="")
            assert locator.locate(FFMPEG) is None

    def test_results_are_memoized_until_reinitialize(self, locator):
        with patch('tubeshelf.tools.locator.subprocess.run') as mock_run:
            mock_run.side_effect = FileNotFoundError()
            locator.locate(YT_DLP)
            locator.locate(YT_DLP)
            assert mock_run.call_count == 1

            locator.reinitialize()
            mock_run.side_effect = None
            mock_run.return_value = Mock(returncode=0, stdout="2024.01.01\n")
            assert locator.locate(YT_DLP) == "yt-dlp"
            assert mock_run.call_count == 2

    def test_check_dependencies(self, locator):
        with patch.object(locator, 'locate', side_effect=lambda tool: "yt-dlp" if tool == YT_DLP else None):
            status = locator.check_dependencies()

        assert status.yt_dlp_available
        assert not status.ffmpeg_available
        assert status.missing == ["ffmpeg"]
        assert "ffmpeg" in locator.get_setup_instructions(status)


class TestProgressParsing:
    """Test yt-dlp progress line helpers"""

    def test_progress_lines(self):
        assert is_progress_line("[download]  42.3% of 3.51MiB at 1.2MiB/s ETA 00:02")
        assert not is_progress_line("[download] Destination: ABC123.webm")
        assert not is_progress_line("[ExtractAudio] 100% done")

    def test_parse_percent(self):
        assert parse_progress_percent("[download]  42.3% of 3.51MiB") == 42.3
        assert parse_progress_percent("[download] 100% of 3.51MiB") == 100.0
        assert parse_progress_percent("[download] Destination: x") is None


@pytest.fixture
def runner(test_settings):
    return ProcessRunner(Scheduler(), test_settings, poll_interval=0)


class TestProcessRunner:
    """Test process launching and completion reporting"""

    def test_failed_launch_handle(self):
        handle = ProcessHandle(launch_error="not found")
        assert handle.finished
        assert handle.result().exit_code == LAUNCH_FAILURE_EXIT_CODE
        assert handle.result().error_output == "not found"
        handle.close()
        handle.close()

    def test_launch_failure_reports_minus_one(self, runner, temp_dir):
        completions = []
        task = runner.run(str(temp_dir / "no-such-tool"), ["--version"],
                          on_complete=lambda output, code: completions.append((output, code)))

        assert runner.scheduler.run_until_complete(task, timeout=10)
        assert task.result.exit_code == -1
        assert completions == [("", -1)]

    def test_captures_stdout_and_exit_code(self, runner):
        script = "import sys; print('line one'); print('line two'); sys.stderr.write('warning\\n')"
        task = runner.run(sys.executable, ["-c", script])

        assert runner.scheduler.run_until_complete(task, timeout=30)
        result = task.result
        assert result.exit_code == 0
        assert result.output.splitlines() == ["line one", "line two"]
        assert result.error_output == "warning"

    def test_nonzero_exit_code(self, runner):
        task = runner.run(sys.executable, ["-c", "import sys; sys.exit(3)"])

        assert runner.scheduler.run_until_complete(task, timeout=30)
        assert task.result.exit_code == 3
        assert not task.result.success

    def test_progress_lines_delivered(self, runner):
        script = (
            "print('[download] Destination: x.webm'); "
            "print('[download]  50.0% of 1.00MiB'); "
            "print('[download] 100.0% of 1.00MiB')"
        )
        progress = []
        task = runner.run(sys.executable, ["-c", script], on_progress=progress.append)

        assert runner.scheduler.run_until_complete(task, timeout=30)
        assert progress == ["[download]  50.0% of 1.00MiB", "[download] 100.0% of 1.00MiB"]

    def test_working_directory(self, runner, temp_dir):
        task = runner.run(sys.executable, ["-c", "import os; print(os.getcwd())"], working_directory=temp_dir)

        assert runner.scheduler.run_until_complete(task, timeout=30)
        assert task.result.output.strip() == str(temp_dir.resolve()) or \
            task.result.output.strip() == str(temp_dir)

    def test_completion_callback_error_is_contained(self, runner):
        def explode(output, code):
            raise RuntimeError("callback bug")

        task = runner.run(sys.executable, ["-c", "pass"], on_complete=explode)

        assert runner.scheduler.run_until_complete(task, timeout=30)
        assert not task.failed
        assert task.result.exit_code == 0


class TestProcessLifetime:
    """Test timeouts and handles released while the process still runs"""

    def test_timeout_kills_process(self, runner):
        completions = []
        started = time.monotonic()
        task = runner.run(sys.executable, ["-c", "import time; print('started', flush=True); time.sleep(30)"],
                          on_complete=lambda output, code: completions.append(code), timeout=0.5)

        assert runner.scheduler.run_until_complete(task, timeout=20)
        assert time.monotonic() - started < 20
        assert task.result.exit_code == TIMEOUT_EXIT_CODE
        assert not task.result.success
        assert completions == [TIMEOUT_EXIT_CODE]

    def test_fast_process_unaffected_by_timeout(self, runner):
        task = runner.run(sys.executable, ["-c", "print('quick')"], timeout=30)

        assert runner.scheduler.run_until_complete(task, timeout=30)
        assert task.result.exit_code == 0
        assert task.result.output == "quick"

    def test_close_while_running_defers_to_watcher(self, runner):
        handle = runner.start(sys.executable, ["-c", "import time; time.sleep(0.5); print('late')"])
        handle.close()
        assert not handle.finished

        deadline = time.monotonic() + 20
        while not handle.finished and time.monotonic() < deadline:
            time.sleep(0.05)

        assert handle.finished
        assert handle.result().output == "late"
        assert handle.result().exit_code == 0
        assert handle._process.stdout.closed
        assert handle._process.stderr.closed

    def test_abandoned_task_keeps_process_running(self, runner):
        task = runner.run(sys.executable, ["-c", "import time; time.sleep(3)"])

        assert not runner.scheduler.run_until_complete(task, timeout=0.2)
        task._routine.close()
        assert not task.done

    def test_interpreter_exit_with_abandoned_task(self, temp_dir):
        script = (
            "import sys\n"
            "from tubeshelf.config.settings import Settings\n"
            "from tubeshelf.core.scheduler import Scheduler\n"
            "from tubeshelf.tools.runner import ProcessRunner\n"
            "scheduler = Scheduler()\n"
            "runner = ProcessRunner(scheduler, Settings(sys.argv[1]), poll_interval=0.01)\n"
            "task = runner.run(sys.executable, ['-c', 'import time; time.sleep(5)'])\n"
            "print('finished' if scheduler.run_until_complete(task, timeout=0.5) else 'abandoned')\n"
        )
        env = dict(os.environ, PYTHONPATH=str(Path(__file__).resolve().parent.parent))

        completed = subprocess.run(
            [sys.executable, "-c", script, str(temp_dir / "missing.yaml")],
            cwd=str(temp_dir), env=env, capture_output=True, text=True, timeout=60
        )

        assert completed.returncode == 0, completed.stderr
        assert completed.stdout.strip() == "abandoned"
