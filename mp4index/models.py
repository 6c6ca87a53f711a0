"""
Movie, track and sample records produced by the MP4 parser.

Samples come in two variants chosen once per track: AudioSample, and
VideoSample which adds the composition offset and keyframe flag. Track
sample lists are in table order, which for video with composition
offsets is decode order rather than presentation order.
"""

import bisect
from dataclasses import dataclass, field

from mp4index.const import TRACK_KIND_AUDIO, TRACK_KIND_VIDEO


class _SamplePosition:
    timestamp: int
    timescale: int
    size: int
    offset: int

    @property
    def time(self) -> float:
        """Decode time in seconds."""
        return self.timestamp / self.timescale if self.timescale else 0.0

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True)
class AudioSample(_SamplePosition):
    """A single audio access unit located in the file."""

    timestamp: int  # Decode time in track timescale units
    timescale: int
    size: int  # Sample size in bytes
    offset: int  # Absolute file offset of the first byte


@dataclass(frozen=True)
class VideoSample(_SamplePosition):
    """A single video frame located in the file."""

    timestamp: int
    timescale: int
    size: int
    offset: int
    composition_offset: int = 0  # CTS - DTS in track timescale units
    keyframe: bool = False

    @property
    def presentation_time(self) -> float:
        """Presentation time in seconds."""
        if not self.timescale:
            return 0.0
        return (self.timestamp + self.composition_offset) / self.timescale


Sample = AudioSample | VideoSample


@dataclass
class Track:
    """Metadata and sample index shared by audio and video tracks."""

    track_id: int = 0
    timescale: int = 0
    duration: int = 0  # In track timescale units (mdhd)
    fourcc: str = ""  # Sample entry type, e.g. "avc1", "mp4a"
    codec: str = ""  # RFC 6381 codec string
    extra_data: bytes = b""  # Codec configuration box payload (avcC, esds, ...)
    samples: list = field(default_factory=list)

    kind = ""

    @property
    def duration_seconds(self) -> float:
        return self.duration / self.timescale if self.timescale else 0.0

    def sample_index_for_time(self, time_seconds: float) -> int:
        """
        Index of the last sample whose decode time is at or before ``time_seconds``.

        Returns 0 for times before the first sample and -1 for a track without samples.
        """
        if not self.samples:
            return -1
        target = time_seconds * self.timescale
        idx = bisect.bisect_right(self.samples, target, key=lambda s: s.timestamp) - 1
        return max(idx, 0)


@dataclass
class AudioTrack(Track):
    channels: int = 0
    sample_rate: int = 0
    sample_size: int = 0  # Bits per sample

    kind = TRACK_KIND_AUDIO


@dataclass
class VideoTrack(Track):
    width: int = 0
    height: int = 0

    kind = TRACK_KIND_VIDEO

    @property
    def keyframes(self) -> list[VideoSample]:
        return [sample for sample in self.samples if sample.keyframe]

    def keyframe_for_time(self, time_seconds: float) -> VideoSample | None:
        """
        Find the nearest keyframe at or before ``time_seconds``.

        Falls back to the first keyframe for earlier times; None if the
        track has no keyframes at all.
        """
        keyframes = self.keyframes
        if not keyframes:
            return None
        target = time_seconds * self.timescale
        idx = bisect.bisect_right(keyframes, target, key=lambda s: s.timestamp) - 1
        return keyframes[max(idx, 0)]


@dataclass
class Movie:
    timescale: int = 0
    duration: int = 0  # In movie timescale units (mvhd)
    tracks: list[Track] = field(default_factory=list)

    def add_track(self, track: Track) -> None:
        self.tracks.append(track)

    @property
    def audio_tracks(self) -> list[AudioTrack]:
        return [track for track in self.tracks if isinstance(track, AudioTrack)]

    @property
    def video_tracks(self) -> list[VideoTrack]:
        return [track for track in self.tracks if isinstance(track, VideoTrack)]

    @property
    def duration_seconds(self) -> float:
        return self.duration / self.timescale if self.timescale else 0.0
