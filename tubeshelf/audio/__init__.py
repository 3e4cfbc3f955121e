"""
Audio package
Pluggable decoders for probing cached audio files
"""

from .decoder import AudioDecoder, AudioInfo, DecoderRegistry, MutagenDecoder, ENTRY_POINT_GROUP

__all__ = [
    'AudioDecoder',
    'AudioInfo',
    'DecoderRegistry',
    'MutagenDecoder',
    'ENTRY_POINT_GROUP'
]
