import struct

import pytest

from mp4_builders import (
    build_audio_entry,
    build_avcc,
    build_box,
    build_co64,
    build_ctts,
    build_full_box,
    build_hdlr,
    build_mdhd,
    build_mvhd,
    build_stco,
    build_stsc,
    build_stsd,
    build_stss,
    build_stsz,
    build_stts,
    build_tkhd,
    build_video_entry,
)
from mp4index.boxes import Box, parse_container
from mp4index.errors import MalformedBoxError
from mp4index.tables import (
    decode_box,
    parse_audio_sample_entry,
    parse_co64,
    parse_ctts,
    parse_hdlr,
    parse_mdhd,
    parse_mvhd,
    parse_stco,
    parse_stsc,
    parse_stsd,
    parse_stss,
    parse_stsz,
    parse_stts,
    parse_stz2,
    parse_tkhd,
    parse_video_sample_entry,
)


def payload_of(box_bytes: bytes) -> bytes:
    """Strip the 8-byte header of a built box."""
    return box_bytes[8:]


def test_parse_mvhd():
    assert parse_mvhd(payload_of(build_mvhd(600, 12345))) == (600, 12345)


@pytest.mark.parametrize("version", [0, 1])
def test_parse_mdhd_versions(version):
    assert parse_mdhd(payload_of(build_mdhd(90000, 2**33 if version else 180000, version=version))) == (
        90000,
        2**33 if version else 180000,
    )


@pytest.mark.parametrize("version", [0, 1])
def test_parse_tkhd_versions(version):
    assert parse_tkhd(payload_of(build_tkhd(7, version=version))) == 7


def test_parse_hdlr():
    assert parse_hdlr(payload_of(build_hdlr("soun"))) == "soun"
    with pytest.raises(MalformedBoxError):
        parse_hdlr(b"\x00" * 8)


def test_parse_stts():
    assert parse_stts(payload_of(build_stts([(3, 1000), (2, 500)]))) == [(3, 1000), (2, 500)]


def test_parse_stts_empty():
    assert parse_stts(payload_of(build_stts([]))) == []


def test_parse_stts_truncated():
    data = payload_of(build_stts([(3, 1000), (2, 500)]))
    with pytest.raises(MalformedBoxError):
        parse_stts(data[:-4])


def test_parse_stsc_drops_description_index():
    assert parse_stsc(payload_of(build_stsc([(1, 5), (3, 2)]))) == [(1, 5), (3, 2)]


def test_parse_chunk_offsets():
    assert parse_stco(payload_of(build_stco([8, 1024, 4096]))) == [8, 1024, 4096]
    assert parse_co64(payload_of(build_co64([8, 2**40]))) == [8, 2**40]


def test_parse_stsz_explicit_and_uniform():
    assert parse_stsz(payload_of(build_stsz([10, 0, 20]))) == [10, 0, 20]
    assert parse_stsz(payload_of(build_stsz([], uniform_size=417, sample_count=4))) == [417] * 4


def test_parse_stsz_count_exceeds_entries():
    data = payload_of(build_full_box("stsz", 0, 0, struct.pack(">III", 0, 3, 10)))
    with pytest.raises(MalformedBoxError):
        parse_stsz(data)


@pytest.mark.parametrize(
    "field_size,entries,expected",
    [
        (16, struct.pack(">3H", 300, 0, 65000), [300, 0, 65000]),
        (8, bytes([10, 20, 30]), [10, 20, 30]),
        (4, bytes([0x12, 0x30]), [1, 2, 3]),
    ],
)
def test_parse_stz2(field_size, entries, expected):
    data = payload_of(build_full_box("stz2", 0, 0, b"\x00\x00\x00" + bytes([field_size]) + struct.pack(">I", 3) + entries))
    assert parse_stz2(data) == expected


def test_parse_stz2_invalid_field_size():
    data = payload_of(build_full_box("stz2", 0, 0, b"\x00\x00\x00\x0c" + struct.pack(">I", 0)))
    with pytest.raises(MalformedBoxError):
        parse_stz2(data)


def test_parse_stss():
    assert parse_stss(payload_of(build_stss([1, 31, 61]))) == [1, 31, 61]


def test_parse_ctts_expands_runs_per_sample():
    offsets = parse_ctts(payload_of(build_ctts([(2, 1024), (1, 0), (3, 512)])))
    assert offsets == [1024, 1024, 0, 512, 512, 512]
    # Indexable directly by 0-based sample number
    assert offsets[3] == 512


def test_parse_ctts_version_1_is_signed():
    assert parse_ctts(payload_of(build_ctts([(1, -512), (2, 512)], version=1))) == [-512, 512, 512]


def test_parse_ctts_version_0_negative_offsets():
    data = payload_of(build_full_box("ctts", 0, 0, struct.pack(">III", 2, 1, 0xFFFFFF9C)))
    assert parse_ctts(data) == [-100, -100]


def test_parse_ctts_expansion_stops_at_limit():
    data = payload_of(build_ctts([(3, 512), (0xFFFFFFFF, 1024), (5, 0)]))
    assert parse_ctts(data, limit=5) == [512, 512, 512, 1024, 1024]
    assert parse_ctts(data, limit=2) == [512, 512]


def test_parse_stsz_uniform_count_capped_at_limit():
    data = payload_of(build_full_box("stsz", 0, 0, struct.pack(">II", 20, 0xFFFFFFFF)))
    assert parse_stsz(data, limit=3) == [20, 20, 20]


def test_parse_stsz_explicit_count_capped_at_limit():
    assert parse_stsz(payload_of(build_stsz([10, 0, 20, 30])), limit=2) == [10, 0]


def test_parse_stz2_count_capped_at_limit():
    data = payload_of(build_full_box("stz2", 0, 0, b"\x00\x00\x00\x08" + struct.pack(">I", 3) + bytes([10, 20, 30])))
    assert parse_stz2(data, limit=2) == [10, 20]


def test_parse_stsd_video_entry():
    entries = parse_stsd(payload_of(build_stsd(build_video_entry(width=1920, height=1080))))

    assert [e.fourcc for e in entries] == ["avc1"]
    video = parse_video_sample_entry(entries[0])
    assert (video.width, video.height) == (1920, 1080)
    assert video.extra_type == "avcC"
    assert video.extra_data == build_avcc()


def test_parse_stsd_audio_entry():
    (entry,) = parse_stsd(payload_of(build_stsd(build_audio_entry(channels=6, sample_rate=48000))))

    audio = parse_audio_sample_entry(entry)

    assert audio.fourcc == "mp4a"
    assert (audio.channels, audio.sample_size, audio.sample_rate) == (6, 16, 48000)
    assert audio.extra_type == "esds"


def test_parse_audio_entry_quicktime_v1_with_wave():
    esds = build_full_box("esds", 0, 0, b"\x03\x00")
    wave = build_box("wave", build_box("frma", b"mp4a") + esds)
    body = b"\x00" * 6 + struct.pack(">H", 1)
    body += struct.pack(">HH", 1, 0) + b"\x00" * 4
    body += struct.pack(">HHHHI", 2, 16, 0xFFFE, 0, 44100 << 16)
    body += b"\x00" * 16  # v1 extension
    body += wave
    (entry,) = parse_stsd(payload_of(build_stsd(build_box("mp4a", body))))

    audio = parse_audio_sample_entry(entry)

    assert audio.sample_rate == 44100
    assert audio.extra_type == "esds"
    assert audio.extra_data == payload_of(esds)


def test_parse_video_entry_too_short():
    (entry,) = parse_stsd(payload_of(build_stsd(build_box("avc1", b"\x00" * 40))))
    with pytest.raises(MalformedBoxError):
        parse_video_sample_entry(entry)


def test_parse_stsd_entry_overrun():
    data = payload_of(build_full_box("stsd", 0, 0, struct.pack(">I", 1) + struct.pack(">I4s", 200, b"avc1")))
    with pytest.raises(MalformedBoxError):
        parse_stsd(data)


def test_decode_box_dispatches_on_type():
    box = parse_container(build_stts([(5, 40)]))["stts"][0]
    assert decode_box(box) == [(5, 40)]


def test_decode_box_rejects_containers_and_unknown_types():
    container = Box(type="stbl", size=8, offset=0, children={})
    with pytest.raises(ValueError):
        decode_box(container)
    with pytest.raises(ValueError):
        decode_box(Box(type="free", size=8, offset=0, payload=b""))
