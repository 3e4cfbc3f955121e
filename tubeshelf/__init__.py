"""
TubeShelf: YouTube audio acquisition with local playlists

TubeShelf drives the yt-dlp command-line tool to resolve song metadata and
fetch audio into a local cache, then keeps those songs in named playlists
stored as JSON files on disk.

## Core Architecture

**Configuration (`tubeshelf/config/`)**
- YAML and environment variable settings with dataclass sections

**Tools (`tubeshelf/tools/`)**
- Locating yt-dlp and ffmpeg in the tools directory or on PATH
- Running external processes without blocking the cooperative thread

**Core (`tubeshelf/core/`)**
- Cooperative scheduler driven by an explicit tick
- Exception hierarchy shared by every subsystem

**YouTube (`tubeshelf/youtube/`)**
- Song records and their download state machine
- JSON-per-line metadata parsing and item id extraction
- Download orchestration and cached file lookup
- The service facade consumed by UI and playback code

**Storage (`tubeshelf/storage/`)**
- Cache directory resolution with temp directory fallback
- Playlist files plus a summary index with a short-lived in-memory cache
- Song metadata store for everything resolved so far

**Audio (`tubeshelf/audio/`)**
- Pluggable audio decoders used to probe cached files

**Utilities (`tubeshelf/utils/`)**
- Colored console and rotating file logging
- Formatting helpers, atomic JSON writes and input validation

## Quick Start
```bash
pip install -e .

tubeshelf doctor
tubeshelf search "https://youtube.com/watch?v=..."
tubeshelf playlist create "Road Trip"
tubeshelf download "https://youtube.com/watch?v=..." --playlist <id>
```
"""

__version__ = "0.3.0"

__author__ = "TubeShelf Team"

__description__ = "Fetch YouTube audio with yt-dlp and organize it into local playlists"

__all__ = [
    "__version__",
    "__author__",
    "__description__"
]
