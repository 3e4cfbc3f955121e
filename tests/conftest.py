"""Test configuration and fixtures"""

import json
import pytest
import tempfile
from pathlib import Path
from unittest.mock import Mock

from tubeshelf.config.settings import Settings
from tubeshelf.core.exceptions import ToolUnavailableError
from tubeshelf.core.scheduler import Scheduler
from tubeshelf.storage.cache_dir import CacheDirectoryResolver
from tubeshelf.tools.runner import ProcessResult
from tubeshelf.youtube.models import SongRecord


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings(temp_dir):
    """Real settings pointed at a temporary cache and tools directory"""
    settings = Settings()
    settings.cache.directory = str(temp_dir / "Cache" / "YouTube")
    settings.tools.directory = str(temp_dir / "Tools")
    settings.tools.yt_dlp = "yt-dlp"
    settings.tools.ffmpeg = "ffmpeg"
    settings.download.poll_interval = 0
    settings.download.batch_poll_interval = 0
    settings.download.max_concurrent = 2
    return settings


@pytest.fixture
def mock_settings():
    """Mock settings for testing"""
    settings = Mock()
    settings.tools.yt_dlp = "yt-dlp"
    settings.tools.ffmpeg = "ffmpeg"
    settings.tools.probe_timeout = 5.0
    settings.download.audio_format = "mp3"
    settings.download.audio_quality = "0"
    settings.download.poll_interval = 0
    settings.download.batch_poll_interval = 0
    settings.download.max_concurrent = 3
    settings.download.progress_marker = "[download]"
    settings.download.metadata_timeout = 30.0
    settings.download.download_timeout = 120.0
    return settings


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock=clock)


@pytest.fixture
def cache_resolver(test_settings):
    return CacheDirectoryResolver(test_settings)


@pytest.fixture
def cache_dir(cache_resolver):
    return cache_resolver.resolve()


@pytest.fixture
def sample_song():
    """A song as produced by the metadata extractor"""
    return SongRecord(
        url="https://www.youtube.com/watch?v=ABC123",
        title="Test Song",
        artist="Test Channel",
        duration=210,
    )


@pytest.fixture
def sample_info():
    """One yt-dlp --dump-json document"""
    return {
        'id': 'ABC123',
        'title': 'Test Song',
        'uploader': 'Test Channel',
        'duration': 125.4,
        'webpage_url': 'https://www.youtube.com/watch?v=ABC123',
        'thumbnail': 'https://i.ytimg.com/vi/ABC123/hqdefault.jpg',
        'description': 'A test video',
    }


@pytest.fixture
def sample_output(sample_info):
    """Two-item yt-dlp output, one JSON document per line"""
    second = dict(sample_info, id='XYZ789', title='Second Song',
                  webpage_url='https://youtu.be/XYZ789', duration=None)
    return "\n".join([json.dumps(sample_info), json.dumps(second)]) + "\n"


class FakeRunner:
    """
    Stands in for ProcessRunner

    Each run finishes after a few scheduler steps with a fixed exit code and
    output, optionally writing `<item_id><suffix>` files into the working
    directory the way yt-dlp would.
    """

    def __init__(self, scheduler, exit_code=0, output="", produce=(), progress_lines=(), steps=2):
        self.scheduler = scheduler
        self.exit_code = exit_code
        self.output = output
        self.produce = produce
        self.progress_lines = progress_lines
        self.steps = steps
        self.calls = []
        self.timeouts = []
        self.active = 0
        self.max_active = 0

    def run(self, executable, arguments, working_directory=None, on_complete=None, on_progress=None,
            name=None, timeout=None):
        self.calls.append((executable, list(arguments)))
        self.timeouts.append(timeout)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        return self.scheduler.start(
            self._routine(arguments, working_directory, on_complete, on_progress), name=name
        )

    def _routine(self, arguments, working_directory, on_complete, on_progress):
        for _ in range(self.steps):
            yield
        for line in self.progress_lines:
            if on_progress:
                on_progress(line)

        if working_directory is not None:
            item_id = arguments[-1].rsplit('=', 1)[-1].rsplit('/', 1)[-1]
            for suffix in self.produce:
                (Path(working_directory) / f"{item_id}{suffix}").write_bytes(b"audio")

        self.active -= 1
        result = ProcessResult(self.output, self.exit_code)
        if on_complete:
            on_complete(result.output, result.exit_code)
        return result


@pytest.fixture
def make_runner(scheduler):
    def factory(**kwargs):
        return FakeRunner(scheduler, **kwargs)
    return factory


@pytest.fixture
def make_locator():
    """Locator mock resolving yt-dlp and ffmpeg unless listed as missing"""
    def factory(missing=()):
        tools = {'yt-dlp': 'yt-dlp', 'ffmpeg': '/opt/ffmpeg/bin/ffmpeg'}

        def require(tool):
            if tool in missing:
                raise ToolUnavailableError(f"{tool} is not available")
            return tools[tool]

        locator = Mock()
        locator.require.side_effect = require
        return locator
    return factory
