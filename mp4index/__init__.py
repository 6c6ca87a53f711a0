"""
MP4 sample indexer.

Extracts per-track sample indices (byte offset, size, timestamp and, for
video, keyframe and composition offset) from MP4/MOV files without
decoding any media:

- source: ByteSource protocol and in-memory, file and HTTP range sources
- boxes: box tree parsing and top-level moov scanning
- tables: fixed-layout decoders for mvhd/mdhd/hdlr/stsd and the stbl tables
- sample_table: reconstruction of the flat sample list from stbl tables
- parser: movie assembly, the ``parse`` entry point
- codecs: RFC 6381 codec strings from sample entries
- main: FastAPI app exposing the index over HTTP
"""

from mp4index.errors import (
    InconsistentSampleCountError,
    MalformedBoxError,
    MissingChunkTableError,
    MissingMetadataError,
    Mp4IndexError,
    ShortReadError,
)
from mp4index.models import AudioSample, AudioTrack, Movie, VideoSample, VideoTrack
from mp4index.parser import parse

__all__ = [
    "parse",
    "Movie",
    "AudioTrack",
    "VideoTrack",
    "AudioSample",
    "VideoSample",
    "Mp4IndexError",
    "MalformedBoxError",
    "MissingMetadataError",
    "ShortReadError",
    "MissingChunkTableError",
    "InconsistentSampleCountError",
]
