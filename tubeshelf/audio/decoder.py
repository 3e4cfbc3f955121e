"""
Audio decoder capability and plugin registry

Core code depends only on the AudioDecoder interface. Decoders are
registered explicitly (`DecoderRegistry.register`) or discovered from the
`tubeshelf.decoders` entry point group, so optional backends can ship as
separate packages:

    # in the plugin's setup.py
    entry_points={
        "tubeshelf.decoders": ["flac = my_plugin:FlacDecoder"],
    }

An entry point may name a decoder class (instantiated without arguments)
or a ready instance.

Decoders only probe files for technical information; decoding or
transcoding audio is left to ffmpeg.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from importlib.metadata import entry_points
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import mutagen

from ..utils.logger import get_logger

ENTRY_POINT_GROUP = "tubeshelf.decoders"


@dataclass
class AudioInfo:
    """Technical information about an audio file"""
    duration: float = 0.0  # seconds
    bitrate: int = 0  # bits per second
    sample_rate: int = 0
    channels: int = 0
    codec: str = ""

    @property
    def duration_seconds(self) -> int:
        return int(self.duration)


class AudioDecoder(ABC):
    """Capability interface for reading audio file information"""

    #: Short unique name used for registration
    name: str = ""

    #: Lower-case file extensions handled, including the dot
    extensions: Sequence[str] = ()

    def can_handle(self, path: Union[str, Path]) -> bool:
        return Path(path).suffix.lower() in self.extensions

    @abstractmethod
    def probe(self, path: Union[str, Path]) -> Optional[AudioInfo]:
        """
        Read technical information from a file

        Args:
            path: Audio file

        Returns:
            AudioInfo, or None if the file cannot be read
        """


class MutagenDecoder(AudioDecoder):
    """Probes the cache's audio containers with mutagen"""

    name = "mutagen"
    extensions = ('.mp3', '.m4a', '.webm', '.opus', '.ogg', '.flac')

    def __init__(self):
        self.logger = get_logger(__name__)

    def probe(self, path: Union[str, Path]) -> Optional[AudioInfo]:
        try:
            audio = mutagen.File(str(path))
        except (mutagen.MutagenError, OSError) as e:
            self.logger.debug(f"mutagen could not read {path}: {e}")
            return None

        if audio is None or getattr(audio, 'info', None) is None:
            return None

        info = audio.info
        return AudioInfo(
            duration=float(getattr(info, 'length', 0.0) or 0.0),
            bitrate=int(getattr(info, 'bitrate', 0) or 0),
            sample_rate=int(getattr(info, 'sample_rate', 0) or 0),
            channels=int(getattr(info, 'channels', 0) or 0),
            codec=type(audio).__name__,
        )


class DecoderRegistry:
    """
    Ordered collection of AudioDecoder implementations

    Lookup returns the most recently registered decoder that handles a
    file's extension, so plugins can override the built-in one.
    """

    def __init__(self, include_builtin: bool = True):
        self.logger = get_logger(__name__)
        self._decoders: Dict[str, AudioDecoder] = {}
        if include_builtin:
            self.register(MutagenDecoder())

    def register(self, decoder: AudioDecoder) -> None:
        """
        Add or replace a decoder

        Raises:
            TypeError: If decoder does not implement AudioDecoder
            ValueError: If the decoder has no name
        """
        if not isinstance(decoder, AudioDecoder):
            raise TypeError(f"{decoder!r} is not an AudioDecoder")
        if not decoder.name:
            raise ValueError("Decoder must define a name")

        self._decoders.pop(decoder.name, None)
        self._decoders[decoder.name] = decoder
        self.logger.debug(f"Registered audio decoder '{decoder.name}'")

    def unregister(self, name: str) -> bool:
        return self._decoders.pop(name, None) is not None

    @property
    def decoders(self) -> List[AudioDecoder]:
        return list(self._decoders.values())

    def get_decoder(self, path: Union[str, Path]) -> Optional[AudioDecoder]:
        for decoder in reversed(self.decoders):
            if decoder.can_handle(path):
                return decoder
        return None

    def probe(self, path: Union[str, Path]) -> Optional[AudioInfo]:
        """Probe a file with the matching decoder; None if none applies"""
        decoder = self.get_decoder(path)
        if decoder is None:
            self.logger.debug(f"No decoder for {Path(path).suffix or path}")
            return None
        try:
            return decoder.probe(path)
        except Exception as e:
            self.logger.warning(f"Decoder '{decoder.name}' failed on {path}: {e}")
            return None

    def load_entry_points(self, group: str = ENTRY_POINT_GROUP) -> int:
        """
        Register decoders advertised by installed packages

        Returns:
            Number of decoders registered
        """
        discovered = entry_points()
        if hasattr(discovered, 'select'):
            candidates = discovered.select(group=group)
        else:
            candidates = discovered.get(group, [])

        loaded = 0
        for entry_point in candidates:
            try:
                target = entry_point.load()
                decoder = target() if isinstance(target, type) else target
                self.register(decoder)
                loaded += 1
            except Exception as e:
                self.logger.warning(f"Failed to load decoder plugin '{entry_point.name}': {e}")
        return loaded
