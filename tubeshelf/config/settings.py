"""
Configuration management for TubeShelf

This module handles loading, validation, and management of application settings
from YAML files and environment variables.

The configuration is organized into logical sections using dataclasses:
- External tool locations and probe timeouts
- Cache directory placement and fallback
- Download arguments and polling intervals
- Playlist storage file names and cache expiry
- Logging output

Environment variables override file-based settings so that a deployment can
relocate the cache or tools without editing YAML.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import asdict, dataclass
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


@dataclass
class ToolsConfig:
    """
    External tool configuration

    The tools directory is checked before the process search path. Tool
    names are the bare command names used when probing PATH.
    """
    directory: str = "TubeShelf/Tools"
    yt_dlp: str = "yt-dlp"
    ffmpeg: str = "ffmpeg"
    probe_timeout: float = 5.0  # seconds


@dataclass
class CacheConfig:
    """
    Cache directory configuration

    `directory` is relative to the current working directory unless absolute.
    When it cannot be created the cache moves under the system temp root.
    """
    directory: str = "TubeShelf/Cache/YouTube"
    fallback_name: str = "TubeShelf_Cache"
    metadata_file: str = "song_metadata.json"
    metadata_cache_ttl: float = 300.0  # 5 minutes


@dataclass
class DownloadConfig:
    """
    Download configuration settings

    Controls the arguments handed to yt-dlp for audio extraction and how
    often the cooperative tasks poll for process completion.
    """
    audio_format: str = "mp3"
    audio_quality: str = "0"  # yt-dlp VBR scale, 0 is best
    poll_interval: float = 0.1
    batch_poll_interval: float = 0.5
    max_concurrent: int = 3
    progress_marker: str = "[download]"
    metadata_timeout: float = 30.0  # seconds before a metadata query is killed
    download_timeout: float = 120.0


@dataclass
class PlaylistConfig:
    """Playlist storage settings"""
    directory_name: str = "Playlists"
    index_file: str = "playlists.json"
    file_prefix: str = "playlist_"
    index_cache_ttl: float = 120.0  # 2 minutes
    default_name: str = "My Downloaded Music"
    default_description: str = "Auto-created from existing downloads"


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Controls log level, optional rotating log file, and console formatting.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


class Settings:
    """
    Main settings class that manages all configuration

    Loads settings from the first YAML file found, then applies environment
    variable overrides. Sections are plain dataclasses so collaborators can
    be handed a customised instance in tests.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".tubeshelf"

        self.tools = ToolsConfig()
        self.cache = CacheConfig()
        self.download = DownloadConfig()
        self.playlists = PlaylistConfig()
        self.logging = LoggingConfig()

        self._load_config()
        self._load_environment_variables()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in order of precedence. The first
        file found is used.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    break
                except Exception as e:
                    print(f"Warning: Failed to load config from {path}: {e}")

        if isinstance(config_data, dict):
            self._apply_config(config_data)

    def _sections(self) -> Dict[str, Any]:
        return {
            'tools': self.tools,
            'cache': self.cache,
            'download': self.download,
            'playlists': self.playlists,
            'logging': self.logging,
        }

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Only attributes that exist on the dataclass are updated; unknown
        sections and keys are ignored.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for section_name, section_data in config_data.items():
            if section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    if hasattr(config_obj, key):
                        setattr(config_obj, key, value)

    def _load_environment_variables(self) -> None:
        """Apply environment variable overrides"""
        env_mappings = {
            'TUBESHELF_CACHE_DIR': lambda v: setattr(self.cache, 'directory', v),
            'TUBESHELF_TOOLS_DIR': lambda v: setattr(self.tools, 'directory', v),
            'TUBESHELF_LOG_LEVEL': lambda v: setattr(self.logging, 'level', v),
            'TUBESHELF_YTDLP': lambda v: setattr(self.tools, 'yt_dlp', v),
            'TUBESHELF_FFMPEG': lambda v: setattr(self.tools, 'ffmpeg', v),
        }

        for env_var, setter in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                setter(value)

    def get_tools_directory(self) -> Path:
        """
        Get the tools directory path

        Relative paths are resolved against the current working directory.

        Returns:
            Path object for the tools directory
        """
        path = Path(self.tools.directory).expanduser()
        return path if path.is_absolute() else Path.cwd() / path

    def get_cache_directory(self) -> Path:
        """
        Get the primary cache directory path

        This is the preferred location only; the cache resolver decides
        whether it is usable.

        Returns:
            Path object for the primary cache directory
        """
        path = Path(self.cache.directory).expanduser()
        return path if path.is_absolute() else Path.cwd() / path

    def get_config_directory(self) -> Path:
        """Get the user configuration directory"""
        return self.config_dir

    def save_config(self, path: Optional[str] = None) -> None:
        """
        Save current configuration to file

        Args:
            path: Custom path to save config, defaults to user config directory

        Raises:
            Exception: If the configuration cannot be saved
        """
        if not path:
            path = self.get_config_directory() / "config.yaml"
        else:
            path = Path(path)

        config_data = {
            name: asdict(section)
            for name, section in self._sections().items()
        }

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, indent=2)
        except Exception as e:
            raise Exception(f"Failed to save config to {path}: {e}")

    def validate(self) -> bool:
        """
        Validate current configuration

        Returns:
            True if configuration is valid, False otherwise
        """
        errors = []

        if self.download.audio_format not in ['mp3', 'm4a', 'opus', 'best']:
            errors.append(f"Invalid audio format: {self.download.audio_format}")

        if self.download.poll_interval <= 0 or self.download.batch_poll_interval <= 0:
            errors.append("Poll intervals must be positive")

        if self.download.max_concurrent < 1:
            errors.append(f"Invalid max_concurrent: {self.download.max_concurrent}")

        if self.download.metadata_timeout <= 0 or self.download.download_timeout <= 0:
            errors.append("Process timeouts must be positive")

        if self.tools.probe_timeout <= 0:
            errors.append(f"Invalid probe timeout: {self.tools.probe_timeout}")

        if self.playlists.index_cache_ttl < 0 or self.cache.metadata_cache_ttl < 0:
            errors.append("Cache expiry windows cannot be negative")

        if errors:
            print("Configuration validation errors:")
            for error in errors:
                print(f"  - {error}")
            return False

        return True

    def __str__(self) -> str:
        sections = [
            f"Cache: {self.cache.directory}",
            f"Tools: {self.tools.directory}",
            f"Download: {self.download.audio_format} @ {self.download.audio_quality}",
            f"Concurrency: {self.download.max_concurrent}",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance for singleton pattern
settings = Settings()


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    return settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global settings
    settings = Settings(config_path)
    return settings
