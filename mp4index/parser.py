"""
MP4 movie parser.

Locates the moov box, walks each trak, and binds the reconstructed
sample list of every audio and video track to a Movie. Tracks with
other handlers (hint, text, metadata, ...) or with incomplete media
boxes are skipped.
"""

import logging
import struct

from mp4index.boxes import Box, locate_metadata_box
from mp4index.codecs import resolve_codec
from mp4index.const import (
    BOX_CO64,
    BOX_CTTS,
    BOX_HDLR,
    BOX_MDHD,
    BOX_MDIA,
    BOX_MINF,
    BOX_MVHD,
    BOX_STBL,
    BOX_STCO,
    BOX_STSC,
    BOX_STSD,
    BOX_STSS,
    BOX_STSZ,
    BOX_STTS,
    BOX_STZ2,
    BOX_TKHD,
    BOX_TRAK,
    HANDLER_KINDS,
    TOP_LEVEL_SIGNATURES,
    TRACK_KIND_AUDIO,
)
from mp4index.errors import MissingMetadataError
from mp4index.models import AudioTrack, Movie, Track, VideoTrack
from mp4index.sample_table import SampleTables, build_samples
from mp4index.source import open_source
from mp4index.tables import (
    decode_box,
    parse_audio_sample_entry,
    parse_ctts,
    parse_stsz,
    parse_stz2,
    parse_video_sample_entry,
)

logger = logging.getLogger(__name__)


def is_mp4_header(data: bytes) -> bool:
    """Check if the data starts with a box typical of an MP4 file (ftyp, moov or mdat)."""
    if len(data) < 8:
        return False
    size = struct.unpack_from(">I", data, 0)[0]
    return size > 0 and data[4:8].decode("latin-1") in TOP_LEVEL_SIGNATURES


def _decode_optional(stbl: Box, box_type: str, default):
    box = stbl.get(box_type)
    return decode_box(box) if box is not None else default


def _decode_capped(stbl: Box, box_type: str, decoder, limit: int, default):
    box = stbl.get(box_type)
    return decoder(box.payload, limit) if box is not None else default


def read_sample_tables(stbl: Box) -> SampleTables:
    """
    Decode the six sample tables of an stbl box.

    Absent boxes yield empty tables. Chunk offsets come from stco when
    present, otherwise co64; sizes from stsz, otherwise stz2. Per-sample
    expansion of stsz, stz2 and ctts stops at the sample count of stts.
    """
    time_to_sample = _decode_optional(stbl, BOX_STTS, [])
    sample_count = sum(count for count, _ in time_to_sample)
    chunk_offsets = _decode_optional(stbl, BOX_STCO, None)
    if chunk_offsets is None:
        chunk_offsets = _decode_optional(stbl, BOX_CO64, [])
    sample_sizes = _decode_capped(stbl, BOX_STSZ, parse_stsz, sample_count, None)
    if sample_sizes is None:
        sample_sizes = _decode_capped(stbl, BOX_STZ2, parse_stz2, sample_count, [])

    return SampleTables(
        time_to_sample=time_to_sample,
        sample_to_chunk=_decode_optional(stbl, BOX_STSC, []),
        chunk_offsets=chunk_offsets,
        sample_sizes=sample_sizes,
        sync_samples=_decode_optional(stbl, BOX_STSS, []),
        composition_offsets=_decode_capped(stbl, BOX_CTTS, parse_ctts, sample_count, []),
    )


def _create_track(kind: str, stbl: Box) -> Track | None:
    """Instantiate an empty track from the first sample entry of stsd."""
    stsd = stbl.get(BOX_STSD)
    entries = decode_box(stsd) if stsd is not None else []
    if not entries:
        return None

    if kind == TRACK_KIND_AUDIO:
        audio = parse_audio_sample_entry(entries[0])
        return AudioTrack(
            fourcc=audio.fourcc,
            codec=resolve_codec(audio.fourcc, audio.extra_type, audio.extra_data),
            extra_data=audio.extra_data,
            channels=audio.channels,
            sample_rate=audio.sample_rate,
            sample_size=audio.sample_size,
        )

    video = parse_video_sample_entry(entries[0])
    return VideoTrack(
        fourcc=video.fourcc,
        codec=resolve_codec(video.fourcc, video.extra_type, video.extra_data),
        extra_data=video.extra_data,
        width=video.width,
        height=video.height,
    )


def parse_track(trak: Box, position: int) -> Track | None:
    """
    Build a Track from a trak box.

    Returns None for tracks that are neither audio nor video, or that lack
    any of mdia, hdlr, mdhd, minf, stbl or a sample entry.
    """
    mdia = trak.get(BOX_MDIA)
    if mdia is None:
        logger.debug("[parser] trak %d has no mdia, skipping", position)
        return None
    hdlr = mdia.get(BOX_HDLR)
    mdhd = mdia.get(BOX_MDHD)
    stbl = mdia.find(BOX_MINF, BOX_STBL)
    if hdlr is None or mdhd is None or stbl is None:
        logger.debug("[parser] trak %d is missing hdlr/mdhd/stbl, skipping", position)
        return None

    handler_type = decode_box(hdlr)
    kind = HANDLER_KINDS.get(handler_type)
    if kind is None:
        logger.debug("[parser] trak %d has unsupported handler %r, skipping", position, handler_type)
        return None

    track = _create_track(kind, stbl)
    if track is None:
        logger.debug("[parser] trak %d has no sample entry, skipping", position)
        return None

    tkhd = trak.get(BOX_TKHD)
    track.track_id = decode_box(tkhd) if tkhd is not None else position
    track.timescale, track.duration = decode_box(mdhd)
    track.samples = build_samples(read_sample_tables(stbl), track.timescale, isinstance(track, VideoTrack))
    return track


def parse_moov(moov: Box) -> Movie:
    """Assemble a Movie from an already parsed moov box."""
    movie = Movie()

    mvhd = moov.get(BOX_MVHD)
    if mvhd is not None:
        movie.timescale, movie.duration = decode_box(mvhd)

    for position, trak in enumerate(moov.get_all(BOX_TRAK), start=1):
        track = parse_track(trak, position)
        if track is None:
            continue
        movie.add_track(track)
        logger.info(
            "[parser] Track %d: %s %s, %d samples, duration=%.1fs",
            track.track_id,
            track.kind,
            track.codec,
            len(track.samples),
            track.duration_seconds,
        )

    return movie


def parse(source) -> Movie:
    """
    Parse an MP4 file into a Movie with per-track sample indices.

    Args:
        source: A ByteSource, a bytes-like buffer, an open file descriptor,
            a filesystem path or an http(s) URL.

    Raises:
        MissingMetadataError: the file holds no moov box.
        Mp4IndexError: any structural failure while reading the boxes or
            reconstructing a track's samples.
    """
    reader = open_source(source)
    try:
        moov = locate_metadata_box(reader)
    finally:
        # Close sources opened here; caller-provided ones stay open
        if reader is not source and hasattr(reader, "close"):
            reader.close()
    if moov is None:
        raise MissingMetadataError("moov box not found")
    return parse_moov(moov)
