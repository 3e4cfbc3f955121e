"""
External tool locator for yt-dlp and ffmpeg

Resolution checks the local tools directory first, then probes the process
search path by running the bare command with its version flag. Results,
including failures, are memoized until `reinitialize()` is called.
"""

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..config.settings import Settings, get_settings
from ..core.exceptions import ToolUnavailableError
from ..utils.logger import get_logger

YT_DLP = "yt-dlp"
FFMPEG = "ffmpeg"

# Version flags differ between tools: ffmpeg only understands a single dash
VERSION_FLAGS = {
    YT_DLP: "--version",
    FFMPEG: "-version",
    "ffprobe": "-version",
}


@dataclass
class DependencyStatus:
    """Availability report for the external tools"""
    yt_dlp_path: Optional[str] = None
    ffmpeg_path: Optional[str] = None
    tools_directory: str = ""
    checked_tools: List[str] = field(default_factory=lambda: [YT_DLP, FFMPEG])

    @property
    def yt_dlp_available(self) -> bool:
        return self.yt_dlp_path is not None

    @property
    def ffmpeg_available(self) -> bool:
        return self.ffmpeg_path is not None

    @property
    def all_available(self) -> bool:
        return self.yt_dlp_available and self.ffmpeg_available

    @property
    def missing(self) -> List[str]:
        missing = []
        if not self.yt_dlp_available:
            missing.append(YT_DLP)
        if not self.ffmpeg_available:
            missing.append(FFMPEG)
        return missing

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            'yt_dlp': self.yt_dlp_path,
            'ffmpeg': self.ffmpeg_path,
            'tools_directory': self.tools_directory,
        }


class ToolLocator:
    """
    Resolves paths to external executables

    Each tool name maps to the configured command (so `yt-dlp` can be
    redirected to a wrapper via settings). A tool found in the tools
    directory resolves to its full path; a tool found on PATH resolves to
    the bare command name.
    """

    def __init__(self, settings: Optional[Settings] = None, tools_directory: Optional[Path] = None):
        """
        Initialize tool locator

        Args:
            settings: Settings instance, defaults to the global settings
            tools_directory: Override for the tools directory
        """
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self.tools_directory = Path(tools_directory) if tools_directory else self.settings.get_tools_directory()
        self.probe_timeout = float(self.settings.tools.probe_timeout)
        self._resolved: Dict[str, Optional[str]] = {}

    def _command_name(self, tool_name: str) -> str:
        configured = {
            YT_DLP: self.settings.tools.yt_dlp,
            FFMPEG: self.settings.tools.ffmpeg,
        }
        return configured.get(tool_name) or tool_name

    @staticmethod
    def _executable_filename(command: str) -> str:
        if os.name == 'nt' and not command.lower().endswith('.exe'):
            return f"{command}.exe"
        return command

    def locate(self, tool_name: str) -> Optional[str]:
        """
        Resolve an executable

        Args:
            tool_name: Logical tool name ('yt-dlp' or 'ffmpeg')

        Returns:
            Path or command name to execute, None if the tool is unavailable
        """
        if tool_name in self._resolved:
            return self._resolved[tool_name]

        command = self._command_name(tool_name)
        resolved = self._find_in_tools_directory(command)
        if resolved is None and self._probe_search_path(command, VERSION_FLAGS.get(tool_name, "--version")):
            resolved = command

        if resolved:
            self.logger.info(f"Resolved {tool_name}: {resolved}")
        else:
            self.logger.warning(f"{tool_name} not found in {self.tools_directory} or on PATH")

        self._resolved[tool_name] = resolved
        return resolved

    def require(self, tool_name: str) -> str:
        """
        Resolve an executable or raise

        Raises:
            ToolUnavailableError: If the tool cannot be located
        """
        path = self.locate(tool_name)
        if path is None:
            raise ToolUnavailableError(
                f"{tool_name} is not available",
                details={'tool': tool_name, 'tools_directory': str(self.tools_directory)}
            )
        return path

    def _find_in_tools_directory(self, command: str) -> Optional[str]:
        candidate = self.tools_directory / self._executable_filename(command)
        try:
            if candidate.is_file():
                return str(candidate)
        except OSError as e:
            self.logger.debug(f"Cannot inspect {candidate}: {e}")
        return None

    def _probe_search_path(self, command: str, version_flag: str) -> bool:
        """
        Run `<command> <version_flag>` with a timeout

        subprocess.run kills the child when the timeout expires, so a hung
        tool never blocks the caller for longer than probe_timeout.
        """
        try:
            result = subprocess.run(
                [command, version_flag],
                capture_output=True,
                text=True,
                timeout=self.probe_timeout
            )
        except subprocess.TimeoutExpired:
            self.logger.warning(f"{command} {version_flag} timed out after {self.probe_timeout}s")
            return False
        except (FileNotFoundError, PermissionError):
            return False
        except OSError as e:
            self.logger.debug(f"Probe of {command} failed: {e}")
            return False

        if result.returncode == 0:
            version = (result.stdout or "").strip().splitlines()
            self.logger.debug(f"{command} on PATH: {version[0] if version else 'unknown version'}")
            return True
        return False

    def reinitialize(self) -> None:
        """Forget memoized results so the next locate() probes again"""
        self._resolved.clear()
        self.logger.info("Tool locations cleared")

    def ensure_tools_directory(self) -> Path:
        """
        Create the tools directory

        Tools are placed there by the deployment; nothing is downloaded.

        Returns:
            The tools directory path
        """
        self.tools_directory.mkdir(parents=True, exist_ok=True)
        return self.tools_directory

    def check_dependencies(self) -> DependencyStatus:
        """
        Resolve every required tool

        Returns:
            DependencyStatus report
        """
        return DependencyStatus(
            yt_dlp_path=self.locate(YT_DLP),
            ffmpeg_path=self.locate(FFMPEG),
            tools_directory=str(self.tools_directory)
        )

    def get_setup_instructions(self, status: Optional[DependencyStatus] = None) -> str:
        """
        Human-readable instructions for installing missing tools

        Args:
            status: Existing report, resolved on demand when omitted

        Returns:
            Instruction text, or a confirmation when nothing is missing
        """
        status = status or self.check_dependencies()
        if status.all_available:
            return "All required tools are available."

        lines = ["Missing tools: " + ", ".join(status.missing), ""]
        if not status.yt_dlp_available:
            lines.extend([
                "yt-dlp:",
                "  pip install yt-dlp",
                f"  or place the {self._executable_filename('yt-dlp')} binary in {status.tools_directory}",
                "",
            ])
        if not status.ffmpeg_available:
            lines.extend([
                "ffmpeg:",
                "  install it with your package manager (apt install ffmpeg, brew install ffmpeg)",
                f"  or place the {self._executable_filename('ffmpeg')} binary in {status.tools_directory}",
                "",
            ])
        lines.append("Run 'tubeshelf doctor' again after installing.")
        return "\n".join(lines)
