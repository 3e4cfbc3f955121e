"""
Playlist data models

A Playlist is a named, ordered list of SongRecords persisted as one JSON file.
Song membership is keyed by item id: a playlist never holds two songs with
the same video id, whatever their other fields. Every mutation bumps
`last_modified_at`; persisting is left to the PlaylistStore.

PlaylistIndexEntry is the lightweight summary kept in the shared index file
so playlists can be listed without opening every playlist file.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..utils.helpers import parse_timestamp
from ..youtube.models import SongRecord


def generate_playlist_id() -> str:
    """Short random id, used as the playlist's file name key"""
    return uuid.uuid4().hex[:8]


@dataclass
class Playlist:
    """
    Named, ordered collection of songs

    Attributes:
        id: Immutable id, used to derive the file name
        name: User-facing name
        description: Free text
        created_at: Creation time
        last_modified_at: Updated on every mutation
        songs: Songs in playback order
    """
    id: str
    name: str
    description: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_modified_at: datetime = field(default_factory=datetime.now)
    songs: List[SongRecord] = field(default_factory=list)

    @classmethod
    def new(cls, name: str, description: Optional[str] = None) -> 'Playlist':
        """Create a playlist with a fresh id and identical timestamps"""
        now = datetime.now()
        return cls(
            id=generate_playlist_id(),
            name=name.strip(),
            description=(description or "").strip(),
            created_at=now,
            last_modified_at=now,
        )

    def touch(self) -> None:
        self.last_modified_at = datetime.now()

    @property
    def song_count(self) -> int:
        return len(self.songs)

    @property
    def downloaded_count(self) -> int:
        return sum(1 for song in self.songs if song.is_downloaded)

    @property
    def is_empty(self) -> bool:
        return not self.songs

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.song_count} songs)"

    def contains_song(self, item_id: str) -> bool:
        return self.get_song(item_id) is not None

    def get_song(self, item_id: str) -> Optional[SongRecord]:
        if not item_id:
            return None
        for song in self.songs:
            if song.item_id == item_id:
                return song
        return None

    def add_song(self, song: SongRecord) -> bool:
        """
        Append a song

        Returns:
            False if the song has no item id or the id is already present
        """
        if song is None or not song.item_id or self.contains_song(song.item_id):
            return False
        self.songs.append(song)
        self.touch()
        return True

    def remove_song(self, item_id: str) -> bool:
        """
        Remove the song with an item id

        Returns:
            False if no song has that id
        """
        song = self.get_song(item_id)
        if song is None:
            return False
        self.songs.remove(song)
        self.touch()
        return True

    def update_song_download_status(self, item_id: str, is_downloaded: bool, cached_file_path: str = "") -> bool:
        """
        Update the download flags of a member song

        Returns:
            True if the song was found and changed
        """
        song = self.get_song(item_id)
        if song is None:
            return False

        if is_downloaded and cached_file_path:
            if song.is_downloaded and song.cached_file_path == cached_file_path:
                return False
            song.mark_fetched(cached_file_path)
        elif is_downloaded:
            return False
        else:
            if not song.is_downloaded and not song.cached_file_path:
                return False
            song.reset_download_state()

        self.touch()
        return True

    def get_playable_songs(self) -> List[SongRecord]:
        """Songs whose cached file is still on disk, in playlist order"""
        return [song for song in self.songs if song.is_ready_to_play()]

    def clear(self) -> None:
        if self.songs:
            self.songs.clear()
            self.touch()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'created_at': self.created_at.isoformat(),
            'last_modified_at': self.last_modified_at.isoformat(),
            'songs': [song.to_dict() for song in self.songs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        """
        Build a playlist from persisted data

        Songs that cannot be rebuilt, or that repeat an item id, are dropped.

        Raises:
            ValueError: If id or name is missing
        """
        if not isinstance(data, dict):
            raise ValueError("Playlist data must be an object")

        playlist_id = data.get('id')
        name = data.get('name')
        if not playlist_id or not name:
            raise ValueError("Playlist data requires id and name")

        created_at = parse_timestamp(data.get('created_at')) or datetime.now()
        playlist = cls(
            id=str(playlist_id),
            name=str(name),
            description=data.get('description') or "",
            created_at=created_at,
            last_modified_at=parse_timestamp(data.get('last_modified_at')) or created_at,
        )

        seen = set()
        for song_data in data.get('songs') or []:
            try:
                song = SongRecord.from_dict(song_data)
            except (AttributeError, TypeError, ValueError):
                continue
            if song.item_id and song.item_id not in seen:
                seen.add(song.item_id)
                playlist.songs.append(song)

        return playlist


@dataclass
class PlaylistIndexEntry:
    """Summary of one playlist, stored in the index file"""
    id: str
    name: str
    description: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    last_modified_at: datetime = field(default_factory=datetime.now)
    song_count: int = 0
    downloaded_count: int = 0

    @classmethod
    def from_playlist(cls, playlist: Playlist) -> 'PlaylistIndexEntry':
        return cls(
            id=playlist.id,
            name=playlist.name,
            description=playlist.description,
            created_at=playlist.created_at,
            last_modified_at=playlist.last_modified_at,
            song_count=playlist.song_count,
            downloaded_count=playlist.downloaded_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'created_at': self.created_at.isoformat(),
            'last_modified_at': self.last_modified_at.isoformat(),
            'song_count': self.song_count,
            'downloaded_count': self.downloaded_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistIndexEntry':
        """
        Raises:
            ValueError: If id or name is missing
        """
        if not isinstance(data, dict) or not data.get('id') or not data.get('name'):
            raise ValueError("Index entry requires id and name")

        created_at = parse_timestamp(data.get('created_at')) or datetime.now()
        return cls(
            id=str(data['id']),
            name=str(data['name']),
            description=data.get('description') or "",
            created_at=created_at,
            last_modified_at=parse_timestamp(data.get('last_modified_at')) or created_at,
            song_count=int(data.get('song_count') or 0),
            downloaded_count=int(data.get('downloaded_count') or 0),
        )

    def matches(self, playlist: Playlist) -> bool:
        """True if this entry already summarises the playlist exactly"""
        return self == PlaylistIndexEntry.from_playlist(playlist)
