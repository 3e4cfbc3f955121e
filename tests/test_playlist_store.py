"""Test playlist persistence"""

import json
import pytest
from datetime import datetime
from unittest.mock import patch

from tubeshelf.storage.playlist import Playlist
from tubeshelf.storage.playlist_store import PlaylistEvent, PlaylistStore
from tubeshelf.youtube.models import SongRecord


@pytest.fixture
def playlists_dir(temp_dir):
    return temp_dir / "Playlists"


@pytest.fixture
def store(playlists_dir, test_settings, clock):
    return PlaylistStore(directory=playlists_dir, settings=test_settings, clock=clock)


def read_index(store):
    return json.loads(store.index_path.read_text(encoding='utf-8'))


class TestPlaylistCrud:
    """Test create, load, list and delete"""

    def test_create_writes_file_and_index(self, store):
        playlist = store.create_playlist("Road Trip", "drive")

        assert playlist is not None
        assert store.playlist_path(playlist.id).name == f"playlist_{playlist.id}.json"
        assert store.playlist_path(playlist.id).exists()
        assert store.index_path.name == "playlists.json"
        assert read_index(store)[playlist.id]['name'] == "Road Trip"

    def test_create_rejects_empty_name(self, store):
        assert store.create_playlist("   ") is None
        assert store.get_all_playlists() == []
        assert not store.index_path.exists()

    def test_round_trip(self, store, sample_song):
        playlist = store.create_playlist("Mix")
        assert store.add_song(playlist, sample_song)
        assert store.save_playlist(playlist)

        loaded = store.load_playlist(playlist.id)

        assert loaded.name == "Mix"
        assert loaded.created_at == playlist.created_at
        assert [song.item_id for song in loaded.songs] == ["ABC123"]
        assert loaded.songs[0].title == "Test Song"

    def test_save_rejects_emptied_name(self, store, sample_song):
        playlist = store.create_playlist("Mix")
        store.add_song(playlist, sample_song)
        assert store.save_playlist(playlist)

        playlist.name = ""
        assert not store.save_playlist(playlist)

        loaded = store.load_playlist(playlist.id)
        assert loaded.name == "Mix"
        assert loaded.song_count == 1
        assert [entry.id for entry in store.get_all_playlists()] == [playlist.id]

    def test_list_sorted_by_name(self, store):
        store.create_playlist("beta")
        store.create_playlist("Alpha")
        store.create_playlist("gamma")

        assert [entry.name for entry in store.get_all_playlists()] == ["Alpha", "beta", "gamma"]

    def test_index_counts(self, store, sample_song):
        playlist = store.create_playlist("Mix")
        sample_song.is_downloaded = True
        store.add_song(playlist, sample_song)
        store.add_song(playlist, SongRecord(url="https://youtu.be/OTHER"))
        store.save_playlist(playlist)

        entry = store.get_all_playlists()[0]
        assert entry.song_count == 2
        assert entry.downloaded_count == 1

    def test_delete(self, store):
        playlist = store.create_playlist("Mix")

        assert store.delete_playlist(playlist.id)
        assert not store.playlist_path(playlist.id).exists()
        assert store.get_all_playlists() == []
        assert playlist.id not in read_index(store)

    def test_delete_missing_playlist_succeeds(self, store):
        assert store.delete_playlist("doesnotexist")

    def test_invalid_ids_rejected(self, store, playlists_dir):
        assert store.load_playlist("../escape") is None
        assert not store.delete_playlist("../escape")

        bad = Playlist.new("Bad")
        bad.id = "../escape"
        assert not store.save_playlist(bad)

    def test_load_missing_empty_and_malformed(self, store, playlists_dir):
        playlists_dir.mkdir(parents=True)
        store.playlist_path("empty1").write_text("")
        store.playlist_path("broken1").write_text("{not json")

        assert store.load_playlist("missing1") is None
        assert store.load_playlist("empty1") is None
        assert store.load_playlist("broken1") is None

    def test_load_rejects_id_mismatch(self, store):
        playlist = store.create_playlist("Mix")
        data = json.loads(store.playlist_path(playlist.id).read_text())
        store.playlist_path("other1").write_text(json.dumps(data))

        assert store.load_playlist("other1") is None

    def test_listeners(self, store):
        events = []
        store.add_listener(lambda event, playlist_id: events.append(event))

        playlist = store.create_playlist("Mix")
        store.delete_playlist(playlist.id)

        assert events == [PlaylistEvent.SAVED, PlaylistEvent.CREATED, PlaylistEvent.DELETED]


class TestSongMembership:
    """Test adding, removing and updating songs"""

    def test_duplicate_rejected(self, store, sample_song):
        playlist = store.create_playlist("Mix")

        assert store.add_song(playlist, sample_song)
        assert not store.add_song(playlist, SongRecord(url="https://youtu.be/ABC123"))
        assert playlist.song_count == 1

    def test_remove(self, store, sample_song):
        playlist = store.create_playlist("Mix")
        store.add_song(playlist, sample_song)

        assert store.remove_song(playlist, "ABC123")
        assert not store.remove_song(playlist, "ABC123")

    def test_update_download_status_across_playlists(self, store, sample_song, temp_dir):
        media = temp_dir / "ABC123.mp3"
        media.write_bytes(b"audio")

        first = store.create_playlist("First")
        second = store.create_playlist("Second")
        store.create_playlist("Unrelated")
        for playlist in (first, second):
            store.add_song(playlist, SongRecord(url=sample_song.url))
            store.save_playlist(playlist)

        assert store.update_song_download_status("ABC123", True, str(media)) == 2
        reloaded = store.load_playlist(first.id)
        assert reloaded.songs[0].is_downloaded
        assert reloaded.songs[0].cached_file_path == str(media)
        assert store.get_all_playlists()[0].downloaded_count == 1

    def test_default_playlist(self, store):
        songs = [
            SongRecord(url="https://youtu.be/A1", is_downloaded=True),
            SongRecord(url="https://youtu.be/A2"),
        ]

        created = store.create_default_playlist(songs)
        assert created is not None
        assert created.name == "My Downloaded Music"
        assert [song.item_id for song in created.songs] == ["A1"]

        assert store.create_default_playlist(songs) is None

    def test_default_playlist_needs_downloaded_songs(self, store):
        assert store.create_default_playlist([SongRecord(url="https://youtu.be/A2")]) is None
        assert store.get_all_playlists() == []

    def test_first_playlist_is_oldest(self, store):
        oldest = Playlist.new("Zulu")
        oldest.created_at = datetime(2020, 1, 1)
        store.save_playlist(oldest)
        store.create_playlist("Alpha")

        assert store.get_first_playlist().id == oldest.id


class TestIndexCache:
    """Test the short-lived index cache"""

    def test_reads_served_from_cache_until_expiry(self, store, clock):
        store.create_playlist("Mix")

        with patch.object(store, '_read_index_from_disk', wraps=store._read_index_from_disk) as disk:
            store.get_all_playlists()
            store.get_all_playlists()
            assert disk.call_count == 0

            clock.advance(119)
            store.get_all_playlists()
            assert disk.call_count == 0

            clock.advance(2)
            store.get_all_playlists()
            assert disk.call_count == 1

    def test_external_changes_visible_after_expiry(self, store, playlists_dir, test_settings, clock):
        store.create_playlist("Mine")
        other = PlaylistStore(directory=playlists_dir, settings=test_settings, clock=clock)
        other.create_playlist("Theirs")

        assert [e.name for e in store.get_all_playlists()] == ["Mine"]
        clock.advance(121)
        assert [e.name for e in store.get_all_playlists()] == ["Mine", "Theirs"]

    def test_save_rereads_index_from_disk(self, store, playlists_dir, test_settings, clock):
        mine = store.create_playlist("Mine")
        other = PlaylistStore(directory=playlists_dir, settings=test_settings, clock=clock)
        theirs = other.create_playlist("Theirs")

        store.save_playlist(mine)

        assert set(read_index(store)) == {mine.id, theirs.id}
        assert len(store.get_all_playlists()) == 2

    def test_failed_read_is_not_cached(self, store, playlists_dir):
        playlists_dir.mkdir(parents=True)
        store.index_path.write_text("{not json")
        assert store.get_all_playlists() == []

        store.index_path.write_text(json.dumps({
            'p1': {'id': 'p1', 'name': 'Recovered', 'created_at': '2024-01-01T00:00:00'}
        }))
        assert [e.name for e in store.get_all_playlists()] == ["Recovered"]

    def test_invalidate_cache(self, store, playlists_dir, test_settings, clock):
        store.get_all_playlists()
        PlaylistStore(directory=playlists_dir, settings=test_settings, clock=clock).create_playlist("New")

        assert store.get_all_playlists() == []
        store.invalidate_cache()
        assert len(store.get_all_playlists()) == 1


class TestReconcile:
    """Test rebuilding the index from playlist files"""

    def test_restores_missing_entry(self, store):
        playlist = store.create_playlist("Mix")
        store.index_path.unlink()
        store.invalidate_cache()

        assert store.reconcile() == 1
        assert [e.id for e in store.get_all_playlists()] == [playlist.id]
        assert playlist.id in read_index(store)

    def test_playlist_file_wins_over_stale_entry(self, store, sample_song):
        playlist = store.create_playlist("Mix")
        playlist.add_song(sample_song)
        playlist.name = "Renamed"
        store.playlist_path(playlist.id).write_text(json.dumps(playlist.to_dict()))

        assert store.reconcile() == 1
        entry = store.get_all_playlists()[0]
        assert entry.name == "Renamed"
        assert entry.song_count == 1

    def test_removes_entries_without_files(self, store):
        keep = store.create_playlist("Keep")
        gone = store.create_playlist("Gone")
        store.playlist_path(gone.id).unlink()

        assert store.reconcile() == 1
        assert [e.id for e in store.get_all_playlists()] == [keep.id]

    def test_unreadable_file_keeps_entry(self, store):
        playlist = store.create_playlist("Mix")
        store.playlist_path(playlist.id).write_text("{not json")

        assert store.reconcile() == 0
        assert [e.id for e in store.get_all_playlists()] == [playlist.id]

    def test_consistent_index_needs_no_fixes(self, store):
        store.create_playlist("A")
        store.create_playlist("B")
        assert store.reconcile() == 0
