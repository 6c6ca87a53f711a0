import os
import struct

import pytest

from mp4_builders import (
    AUDIO_DELTA,
    AUDIO_SIZES,
    AUDIO_TIMESCALE,
    VIDEO_DELTA,
    VIDEO_TIMESCALE,
    build_box,
    build_ctts,
    build_full_box,
    build_ftyp,
    build_hdlr,
    build_mdhd,
    build_moov,
    build_stco,
    build_stsc,
    build_stsd,
    build_stsz,
    build_stts,
    build_trak,
    build_video_entry,
)
from mp4index import parse
from mp4index.boxes import parse_container
from mp4index.errors import MissingChunkTableError, MissingMetadataError
from mp4index.models import AudioTrack, VideoTrack
from mp4index.parser import is_mp4_header, parse_track, read_sample_tables
from mp4index.source import BytesSource


def test_parse_reference_file_tracks(reference_file):
    data, _ = reference_file

    movie = parse(data)

    assert (movie.timescale, movie.duration) == (1000, 200)
    assert movie.duration_seconds == pytest.approx(0.2)
    # The hint track is skipped
    assert [t.kind for t in movie.tracks] == ["video", "audio"]
    video, audio = movie.tracks
    assert isinstance(video, VideoTrack)
    assert isinstance(audio, AudioTrack)
    assert movie.video_tracks == [video]
    assert movie.audio_tracks == [audio]


def test_parse_video_track(reference_file):
    data, start = reference_file

    video = parse(data).video_tracks[0]

    assert video.track_id == 1
    assert (video.width, video.height) == (1280, 720)
    assert video.fourcc == "avc1"
    assert video.codec == "avc1.64001F"
    assert video.timescale == VIDEO_TIMESCALE
    # Sample 2 has size 0 and is dropped
    assert [s.size for s in video.samples] == [100, 50, 60, 70]
    assert [s.offset for s in video.samples] == [start, start + 100, start + 150, start + 210]
    assert [s.timestamp for s in video.samples] == [0, VIDEO_DELTA, 3 * VIDEO_DELTA, 4 * VIDEO_DELTA]
    assert [s.keyframe for s in video.samples] == [True, False, True, False]
    assert [s.composition_offset for s in video.samples] == [0, 1024, 512, 512]


def test_parse_audio_track_with_co64_and_uniform_sizes(reference_file):
    data, start = reference_file

    audio = parse(data).audio_tracks[0]

    assert audio.track_id == 2
    assert (audio.channels, audio.sample_rate, audio.sample_size) == (2, 44100, 16)
    assert audio.codec == "mp4a.40.2"
    assert audio.timescale == AUDIO_TIMESCALE
    assert audio.duration == AUDIO_DELTA * len(AUDIO_SIZES)
    audio_start = start + 280
    assert [s.offset for s in audio.samples] == [audio_start + 20 * i for i in range(4)]
    assert [s.timestamp for s in audio.samples] == [AUDIO_DELTA * i for i in range(4)]


def test_sample_offsets_point_into_mdat(reference_file):
    data, start = reference_file
    media = data[start : start + 360]

    movie = parse(data)

    for track in movie.tracks:
        for sample in track.samples:
            assert data[sample.offset : sample.end] == media[sample.offset - start : sample.end - start]
            assert sample.end <= start + 360


def test_moov_first_layout_gives_same_index(reference_file, reference_file_moov_first):
    data, start = reference_file
    data_first, start_first = reference_file_moov_first

    movie = parse(data)
    movie_first = parse(data_first)

    shift = start_first - start
    for track, track_first in zip(movie.tracks, movie_first.tracks):
        assert [s.offset + shift for s in track.samples] == [s.offset for s in track_first.samples]
        assert [s.timestamp for s in track.samples] == [s.timestamp for s in track_first.samples]


def test_parse_accepts_path_and_file_descriptor(reference_path, reference_file):
    data, _ = reference_file
    expected = parse(data)

    assert parse(reference_path) == expected
    assert parse(str(reference_path)) == expected
    fd = os.open(reference_path, os.O_RDONLY)
    try:
        assert parse(fd) == expected
        # The descriptor is borrowed, not closed
        os.fstat(fd)
    finally:
        os.close(fd)


def test_parse_accepts_byte_source(reference_file):
    data, _ = reference_file
    assert len(parse(BytesSource(data)).tracks) == 2


def test_missing_moov_raises():
    data = build_ftyp() + build_box("mdat", b"\x00" * 64)
    with pytest.raises(MissingMetadataError):
        parse(data)


def test_movie_without_mvhd_or_tracks():
    movie = parse(build_box("moov", b""))
    assert movie.timescale == 0
    assert movie.tracks == []


def test_track_errors_propagate():
    trak = build_trak(
        1,
        "vide",
        1000,
        0,
        [
            build_stsd(build_video_entry()),
            build_stts([(2, 100)]),
            build_stsz([10, 10]),
        ],
    )
    with pytest.raises(MissingChunkTableError):
        parse(build_moov(trak))


def test_incomplete_tracks_are_skipped():
    no_mdia = build_box("trak", b"")
    no_stbl = build_box("trak", build_box("mdia", b""))
    empty_stsd = build_trak(3, "vide", 1000, 0, [build_stsd()])
    movie = parse(build_moov(no_mdia, no_stbl, empty_stsd))
    assert movie.tracks == []


def test_track_id_defaults_to_position():
    stbl = build_box(
        "stbl",
        build_stsd(build_video_entry()) + build_stts([(1, 100)]) + build_stsc([(1, 1)]) + build_stsz([5]) + build_stco([0]),
    )
    mdia = build_box("mdia", build_mdhd(1000, 100) + build_hdlr("vide") + build_box("minf", stbl))
    trak_without_tkhd = build_box("trak", mdia)

    movie = parse(build_moov(trak_without_tkhd, trak_without_tkhd))

    assert [t.track_id for t in movie.tracks] == [1, 2]


def test_parse_track_reads_tkhd():
    trak_bytes = build_trak(
        9,
        "vide",
        1000,
        0,
        [build_stsd(build_video_entry()), build_stts([(1, 100)]), build_stsc([(1, 1)]), build_stsz([5]), build_stco([0])],
    )
    trak = parse_container(trak_bytes)["trak"][0]

    track = parse_track(trak, 4)

    assert track.track_id == 9
    assert [s.offset for s in track.samples] == [0]


def test_seek_helpers(reference_file):
    data, _ = reference_file
    video = parse(data).video_tracks[0]

    # Keyframes at timestamps 0 and 1536 (0.12s)
    assert video.keyframe_for_time(0.0).timestamp == 0
    assert video.keyframe_for_time(0.1).timestamp == 0
    assert video.keyframe_for_time(0.125).timestamp == 3 * VIDEO_DELTA
    assert video.keyframe_for_time(10.0).timestamp == 3 * VIDEO_DELTA
    assert video.sample_index_for_time(0.05) == 1
    assert video.sample_index_for_time(-1.0) == 0
    assert len(video.keyframes) == 2


def test_is_mp4_header(reference_file):
    data, _ = reference_file
    assert is_mp4_header(data)
    assert is_mp4_header(build_moov())
    assert not is_mp4_header(b"\x1a\x45\xdf\xa3\x00\x00\x00\x00")
    assert not is_mp4_header(b"ftyp")


def test_declared_table_counts_are_capped_at_stts_total():
    stsz = build_full_box("stsz", 0, 0, struct.pack(">II", 40, 0xFFFFFFFF))
    ctts = build_ctts([(0xFFFFFFFF, 256)])
    trak = build_trak(
        1,
        "vide",
        1000,
        0,
        [build_stsd(build_video_entry()), build_stts([(3, 100)]), build_stsc([(1, 3)]), stsz, ctts, build_stco([500])],
    )
    stbl = parse_container(trak)["trak"][0].find("mdia", "minf", "stbl")

    tables = read_sample_tables(stbl)

    assert tables.sample_sizes == [40, 40, 40]
    assert tables.composition_offsets == [256, 256, 256]
    video = parse(build_moov(trak)).video_tracks[0]
    assert [s.offset for s in video.samples] == [500, 540, 580]
