"""Test the timed cache, cache directory resolution and song metadata store"""

import json
import pytest
from unittest.mock import patch

from tubeshelf.storage.cache import MISSING, TimedCache
from tubeshelf.storage.cache_dir import CacheDirectoryResolver
from tubeshelf.storage.metadata_store import SongMetadataStore
from tubeshelf.youtube.models import SongRecord


class TestTimedCache:
    """Test expiry against an injected clock"""

    def test_expiry(self, clock):
        cache = TimedCache(120, clock)
        assert cache.get() is MISSING

        cache.set({'a': 1})
        clock.advance(119)
        assert cache.get() == {'a': 1}

        clock.advance(1)
        assert cache.get() is MISSING

    def test_invalidate(self, clock):
        cache = TimedCache(10, clock)
        cache.set("x")
        cache.invalidate()
        assert cache.get() is MISSING
        assert cache.age is None

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            TimedCache(-1)


class TestCacheDirectoryResolver:
    """Test primary and fallback cache roots"""

    def test_creates_primary(self, test_settings, temp_dir):
        resolver = CacheDirectoryResolver(test_settings)
        path = resolver.resolve()

        assert path == temp_dir / "Cache" / "YouTube"
        assert path.is_dir()
        assert not resolver.using_fallback
        assert resolver.playlists_directory() == path / "Playlists"
        assert resolver.metadata_file() == path / "song_metadata.json"

    def test_falls_back_when_primary_unusable(self, test_settings, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("a file, not a directory")
        resolver = CacheDirectoryResolver(test_settings, primary=blocker / "cache")
        resolver.fallback = temp_dir / "fallback" / "YouTube"

        path = resolver.resolve()

        assert path == temp_dir / "fallback" / "YouTube"
        assert path.is_dir()
        assert resolver.using_fallback

    def test_fallback_under_temp_root(self, test_settings):
        with patch('tubeshelf.storage.cache_dir.tempfile.gettempdir', return_value="/tmp/x"):
            resolver = CacheDirectoryResolver(test_settings)
        assert resolver.fallback.parts[-2:] == ("TubeShelf_Cache", "YouTube")


@pytest.fixture
def metadata_store(temp_dir, test_settings, clock):
    return SongMetadataStore(path=temp_dir / "song_metadata.json", settings=test_settings, clock=clock)


class TestSongMetadataStore:
    """Test the persistent song map"""

    def test_add_and_get(self, metadata_store, sample_song):
        assert metadata_store.add_or_update_song(sample_song)

        data = json.loads(metadata_store.path.read_text(encoding='utf-8'))
        assert 'last_updated' in data
        assert data['songs']['ABC123']['title'] == "Test Song"
        assert metadata_store.get_song("ABC123").artist == "Test Channel"

    def test_rejects_song_without_item_id(self, metadata_store):
        assert not metadata_store.add_or_update_song(SongRecord(url="https://example.com/x"))

    def test_sorted_by_artist_then_title(self, metadata_store):
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A1", artist="b", title="z"))
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A2", artist="A", title="y"))
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A3", artist="b", title="a"))

        assert [s.item_id for s in metadata_store.get_all_songs()] == ["A2", "A3", "A1"]

    def test_remove(self, metadata_store, sample_song):
        metadata_store.add_or_update_song(sample_song)
        assert metadata_store.remove_song("ABC123")
        assert not metadata_store.remove_song("ABC123")
        assert metadata_store.get_song("ABC123") is None

    def test_malformed_file_is_empty_store(self, metadata_store):
        metadata_store.path.write_text("{not json")
        assert metadata_store.load() == {}

    def test_cached_songs_with_files(self, metadata_store, temp_dir):
        media = temp_dir / "A1.mp3"
        media.write_bytes(b"audio")
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A1"))
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A2"))

        found = metadata_store.get_cached_songs_with_files(lambda item_id: media if item_id == "A1" else None)

        assert [s.item_id for s in found] == ["A1"]
        assert found[0].is_downloaded
        assert found[0].cached_file_path == str(media)

    def test_cleanup_drops_songs_whose_file_vanished(self, metadata_store):
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A1", is_downloaded=True,
                                                     cached_file_path="/gone/A1.mp3"))
        metadata_store.add_or_update_song(SongRecord(url="https://youtu.be/A2"))

        assert metadata_store.cleanup(lambda item_id: None) == 1
        assert [s.item_id for s in metadata_store.get_all_songs()] == ["A2"]
        assert metadata_store.cleanup(lambda item_id: None) == 0

    def test_reads_cached_for_five_minutes(self, metadata_store, sample_song, clock):
        metadata_store.add_or_update_song(sample_song)
        metadata_store.path.write_text(json.dumps({'songs': {}}))

        assert metadata_store.get_song("ABC123") is not None
        clock.advance(300)
        assert metadata_store.get_song("ABC123") is None
