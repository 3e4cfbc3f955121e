"""Test configuration loading"""

import yaml
from pathlib import Path

from tubeshelf.config.settings import Settings


class TestSettings:
    """Test YAML loading, environment overrides and validation"""

    def test_defaults_are_valid(self, temp_dir):
        settings = Settings(str(temp_dir / "missing.yaml"))

        assert settings.download.max_concurrent >= 1
        assert settings.playlists.index_file == "playlists.json"
        assert settings.playlists.index_cache_ttl == 120.0

    def test_yaml_overrides_known_keys(self, temp_dir, monkeypatch):
        monkeypatch.delenv('TUBESHELF_CACHE_DIR', raising=False)
        config = temp_dir / "config.yaml"
        config.write_text(yaml.safe_dump({
            'cache': {'directory': '/srv/tubeshelf/cache'},
            'download': {'max_concurrent': 5, 'unknown_key': 1},
            'unknown_section': {'x': 1},
        }))

        settings = Settings(str(config))

        assert settings.cache.directory == '/srv/tubeshelf/cache'
        assert settings.download.max_concurrent == 5
        assert not hasattr(settings.download, 'unknown_key')

    def test_environment_wins_over_file(self, temp_dir, monkeypatch):
        config = temp_dir / "config.yaml"
        config.write_text(yaml.safe_dump({'tools': {'ffmpeg': 'from-file'}}))
        monkeypatch.setenv('TUBESHELF_FFMPEG', '/usr/local/bin/ffmpeg')
        monkeypatch.setenv('TUBESHELF_LOG_LEVEL', 'DEBUG')

        settings = Settings(str(config))

        assert settings.tools.ffmpeg == '/usr/local/bin/ffmpeg'
        assert settings.logging.level == 'DEBUG'

    def test_relative_directories_resolve_against_cwd(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)
        monkeypatch.delenv('TUBESHELF_CACHE_DIR', raising=False)
        settings = Settings(str(temp_dir / "missing.yaml"))
        settings.cache.directory = "Cache/YouTube"

        assert settings.get_cache_directory() == Path.cwd() / "Cache" / "YouTube"

    def test_validate_rejects_bad_values(self, test_settings, capsys):
        test_settings.download.poll_interval = 0.1
        test_settings.download.batch_poll_interval = 0.5
        assert test_settings.validate()

        test_settings.download.max_concurrent = 0
        test_settings.download.audio_format = "wav"
        assert not test_settings.validate()
        assert "Invalid audio format" in capsys.readouterr().out

    def test_validate_rejects_non_positive_timeouts(self, test_settings, capsys):
        assert test_settings.download.metadata_timeout == 30.0
        assert test_settings.download.download_timeout == 120.0

        test_settings.download.download_timeout = 0
        assert not test_settings.validate()
        assert "Process timeouts must be positive" in capsys.readouterr().out

    def test_save_config_round_trip(self, temp_dir, monkeypatch):
        monkeypatch.delenv('TUBESHELF_TOOLS_DIR', raising=False)
        settings = Settings(str(temp_dir / "missing.yaml"))
        settings.tools.directory = "/opt/tubeshelf/tools"
        target = temp_dir / "saved" / "config.yaml"

        settings.save_config(str(target))
        reloaded = Settings(str(target))

        assert reloaded.tools.directory == "/opt/tubeshelf/tools"
        assert set(yaml.safe_load(target.read_text())) == {'tools', 'cache', 'download', 'playlists', 'logging'}
