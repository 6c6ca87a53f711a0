"""
Decoders for the fixed binary layouts of the boxes the indexer consumes.

Each decoder takes a leaf box payload (the bytes after the box header) and
returns plain Python values:

- mvhd / mdhd: (timescale, duration)
- tkhd: track id
- hdlr: handler type
- stsd: sample entries, refined by parse_audio_sample_entry / parse_video_sample_entry
- stts: [(sample_count, sample_delta)]
- ctts: per-sample composition offsets (run-length entries expanded here)
- stsc: [(first_chunk, samples_per_chunk)], first_chunk is 1-based
- stco / co64: chunk offsets
- stsz / stz2: per-sample sizes (uniform sizes expanded here)
- stss: 1-based sync sample numbers

Truncated payloads raise MalformedBoxError instead of yielding partial tables.
"""

import struct
from dataclasses import dataclass

from mp4index.boxes import Box
from mp4index.const import (
    BOX_CO64,
    BOX_CTTS,
    BOX_HDLR,
    BOX_MDHD,
    BOX_MVHD,
    BOX_STCO,
    BOX_STSC,
    BOX_STSD,
    BOX_STSS,
    BOX_STSZ,
    BOX_STTS,
    BOX_STZ2,
    BOX_TKHD,
)
from mp4index.errors import MalformedBoxError

# Child boxes of a sample entry that carry codec configuration
CODEC_CONFIG_BOXES = ("avcC", "hvcC", "av1C", "vpcC", "esds", "dOps", "dfLa", "dac3", "dec3")

# Size of the generic SampleEntry fields: reserved(6) + data_reference_index(2)
_SAMPLE_ENTRY_SIZE = 8
# AudioSampleEntry fixed fields, including the generic part
_AUDIO_ENTRY_SIZE = 28
# VisualSampleEntry fixed fields, including the generic part
_VISUAL_ENTRY_SIZE = 78


# =============================================================================
# Sample entry records
# =============================================================================


@dataclass
class SampleEntry:
    """One raw entry of an stsd box."""

    fourcc: str  # e.g. "avc1", "mp4a"
    body: bytes  # Entry payload after its 8-byte box header


@dataclass
class AudioSampleEntry:
    fourcc: str
    channels: int = 0
    sample_size: int = 0  # Bits per sample
    sample_rate: int = 0  # Hz, integer part of the 16.16 field
    extra_type: str = ""  # Type of the codec configuration box, e.g. "esds"
    extra_data: bytes = b""


@dataclass
class VideoSampleEntry:
    fourcc: str
    width: int = 0
    height: int = 0
    extra_type: str = ""  # e.g. "avcC", "hvcC"
    extra_data: bytes = b""


# =============================================================================
# Helpers
# =============================================================================


def parse_full_box_header(data: bytes, box_type: str) -> tuple[int, int]:
    """
    Parse a full box header (version + flags).

    Returns:
        (version, flags)
    """
    if len(data) < 4:
        raise MalformedBoxError(f"{box_type} payload too short for a full box header")
    version = data[0]
    flags = (data[1] << 16) | (data[2] << 8) | data[3]
    return version, flags


def _read_count(data: bytes, pos: int, box_type: str) -> int:
    if len(data) < pos + 4:
        raise MalformedBoxError(f"{box_type} payload too short for its entry count")
    return struct.unpack_from(">I", data, pos)[0]


def _read_array(data: bytes, pos: int, count: int, code: str, box_type: str) -> tuple[int, ...]:
    """Read ``count`` big-endian integers of struct format ``code`` starting at ``pos``."""
    width = struct.calcsize(code)
    if len(data) < pos + count * width:
        raise MalformedBoxError(
            f"{box_type} declares {count} entries but holds only {(len(data) - pos) // width}"
        )
    return struct.unpack_from(f">{count}{code}", data, pos)


def _iter_child_boxes(data: bytes):
    """Leniently iterate (type, payload) of boxes nested in a sample entry, stopping at padding."""
    pos = 0
    while pos + 8 <= len(data):
        size, raw_type = struct.unpack_from(">I4s", data, pos)
        if size < 8 or pos + size > len(data):
            break
        yield raw_type.decode("latin-1"), data[pos + 8 : pos + size]
        pos += size


def _find_codec_config(data: bytes) -> tuple[str, bytes]:
    """Pick the codec configuration box from sample entry children."""
    first: tuple[str, bytes] | None = None
    for child_type, payload in _iter_child_boxes(data):
        if child_type in CODEC_CONFIG_BOXES:
            return child_type, payload
        if child_type == "wave":
            # QuickTime audio nests esds inside a wave box
            nested_type, nested = _find_codec_config(payload)
            if nested_type in CODEC_CONFIG_BOXES:
                return nested_type, nested
        if first is None:
            first = (child_type, payload)
    return first or ("", b"")


# =============================================================================
# Header boxes
# =============================================================================


def _parse_time_header(data: bytes, box_type: str) -> tuple[int, int]:
    version, _ = parse_full_box_header(data, box_type)
    if version == 1:
        # 64-bit: version(1)+flags(3)+creation(8)+modification(8)
        if len(data) < 32:
            raise MalformedBoxError(f"{box_type} v1 payload too short")
        timescale = struct.unpack_from(">I", data, 20)[0]
        duration = struct.unpack_from(">Q", data, 24)[0]
    else:
        # 32-bit: version(1)+flags(3)+creation(4)+modification(4)
        if len(data) < 20:
            raise MalformedBoxError(f"{box_type} v0 payload too short")
        timescale = struct.unpack_from(">I", data, 12)[0]
        duration = struct.unpack_from(">I", data, 16)[0]
    return timescale, duration


def parse_mvhd(data: bytes) -> tuple[int, int]:
    """Parse Movie Header box (mvhd) for the movie timescale and duration."""
    return _parse_time_header(data, BOX_MVHD)


def parse_mdhd(data: bytes) -> tuple[int, int]:
    """Parse Media Header box (mdhd) for the track timescale and duration."""
    return _parse_time_header(data, BOX_MDHD)


def parse_tkhd(data: bytes) -> int:
    """Parse Track Header box (tkhd) for the track id."""
    version, _ = parse_full_box_header(data, BOX_TKHD)
    pos = 20 if version == 1 else 12
    if len(data) < pos + 4:
        raise MalformedBoxError("tkhd payload too short")
    return struct.unpack_from(">I", data, pos)[0]


def parse_hdlr(data: bytes) -> str:
    """
    Parse Handler Reference box (hdlr).

    Layout: version(1) + flags(3) + pre_defined(4) + handler_type(4) + ...
    """
    if len(data) < 12:
        raise MalformedBoxError("hdlr payload too short")
    return data[8:12].decode("latin-1")


# =============================================================================
# Sample description
# =============================================================================


def parse_stsd(data: bytes) -> list[SampleEntry]:
    """
    Parse Sample Description box (stsd) into raw sample entries.

    Layout: version(1) + flags(3) + entry_count(4) + [size(4) + type(4) + body]...
    """
    parse_full_box_header(data, BOX_STSD)
    entry_count = _read_count(data, 4, BOX_STSD)
    entries = []
    pos = 8
    for _ in range(entry_count):
        if len(data) < pos + 8:
            raise MalformedBoxError("stsd entry header truncated")
        size, raw_type = struct.unpack_from(">I4s", data, pos)
        if size < 8 or pos + size > len(data):
            raise MalformedBoxError(f"stsd entry {raw_type!r} declares size {size}")
        entries.append(SampleEntry(fourcc=raw_type.decode("latin-1"), body=data[pos + 8 : pos + size]))
        pos += size
    return entries


def parse_audio_sample_entry(entry: SampleEntry) -> AudioSampleEntry:
    """
    Decode an AudioSampleEntry (ISO) or QuickTime sound description v0/v1/v2.

    Body layout after the generic fields: version(2) + revision(2) + vendor(4) +
    channelcount(2) + samplesize(2) + pre_defined(2) + reserved(2) + samplerate(4, 16.16)
    """
    body = entry.body
    if len(body) < _AUDIO_ENTRY_SIZE:
        raise MalformedBoxError(f"{entry.fourcc} audio sample entry too short")
    version = struct.unpack_from(">H", body, _SAMPLE_ENTRY_SIZE)[0]
    channels, sample_size = struct.unpack_from(">HH", body, 16)
    sample_rate = struct.unpack_from(">I", body, 24)[0] >> 16
    children_start = _AUDIO_ENTRY_SIZE

    if version == 1:
        children_start += 16
    elif version == 2:
        # QuickTime v2: sizeOfStructOnly(4) + audioSampleRate(float64) + numAudioChannels(4) + ...
        if len(body) < 64:
            raise MalformedBoxError(f"{entry.fourcc} v2 sound description too short")
        sample_rate = round(struct.unpack_from(">d", body, 32)[0])
        channels = struct.unpack_from(">I", body, 40)[0]
        sample_size = struct.unpack_from(">I", body, 48)[0]
        children_start += 36

    extra_type, extra_data = _find_codec_config(body[children_start:])
    return AudioSampleEntry(
        fourcc=entry.fourcc,
        channels=channels,
        sample_size=sample_size,
        sample_rate=sample_rate,
        extra_type=extra_type,
        extra_data=extra_data,
    )


def parse_video_sample_entry(entry: SampleEntry) -> VideoSampleEntry:
    """
    Decode a VisualSampleEntry.

    Body layout after the generic fields: pre_defined/reserved(16) + width(2) +
    height(2) + resolutions(8) + reserved(4) + frame_count(2) + compressorname(32) +
    depth(2) + pre_defined(2), then nested boxes (avcC, hvcC, pasp, ...).
    """
    body = entry.body
    if len(body) < _VISUAL_ENTRY_SIZE:
        raise MalformedBoxError(f"{entry.fourcc} visual sample entry too short")
    width, height = struct.unpack_from(">HH", body, 24)
    extra_type, extra_data = _find_codec_config(body[_VISUAL_ENTRY_SIZE:])
    return VideoSampleEntry(
        fourcc=entry.fourcc,
        width=width,
        height=height,
        extra_type=extra_type,
        extra_data=extra_data,
    )


# =============================================================================
# Sample tables
# =============================================================================


def parse_stts(data: bytes) -> list[tuple[int, int]]:
    """
    Parse Time-to-Sample box (stts) - run-length encoded durations.

    Layout: version(1) + flags(3) + entry_count(4) + [sample_count(4) + sample_delta(4)]...
    """
    parse_full_box_header(data, BOX_STTS)
    entry_count = _read_count(data, 4, BOX_STTS)
    values = _read_array(data, 8, entry_count * 2, "I", BOX_STTS)
    return list(zip(values[0::2], values[1::2]))


def parse_ctts(data: bytes, limit: int | None = None) -> list[int]:
    """
    Parse Composition Time to Sample box (ctts) and expand it per sample.

    Layout: version(1) + flags(3) + entry_count(4) + [sample_count(4) + sample_offset(4)]...

    Offsets are signed in both versions (version 0 boxes carry negative
    offsets in practice). The result is indexed
    directly by 0-based sample number and holds at most ``limit`` entries.
    """
    parse_full_box_header(data, BOX_CTTS)
    entry_count = _read_count(data, 4, BOX_CTTS)
    if len(data) < 8 + entry_count * 8:
        raise MalformedBoxError(f"ctts declares {entry_count} entries but holds only {(len(data) - 8) // 8}")
    offsets: list[int] = []
    for count, offset in struct.iter_unpack(">Ii", data[8 : 8 + entry_count * 8]):
        if limit is not None:
            count = min(count, limit - len(offsets))
        offsets.extend([offset] * count)
        if limit is not None and len(offsets) >= limit:
            break
    return offsets


def parse_stsc(data: bytes) -> list[tuple[int, int]]:
    """
    Parse Sample-to-Chunk box (stsc).

    Layout: version(1) + flags(3) + entry_count(4) +
            [first_chunk(4) + samples_per_chunk(4) + sample_desc_index(4)]...

    Returns:
        List of (first_chunk, samples_per_chunk); the description index is dropped.
    """
    parse_full_box_header(data, BOX_STSC)
    entry_count = _read_count(data, 4, BOX_STSC)
    values = _read_array(data, 8, entry_count * 3, "I", BOX_STSC)
    return list(zip(values[0::3], values[1::3]))


def parse_stco(data: bytes) -> list[int]:
    """
    Parse Chunk Offset box (stco) - 32-bit offsets.

    Layout: version(1) + flags(3) + entry_count(4) + [offset(4)]...
    """
    parse_full_box_header(data, BOX_STCO)
    entry_count = _read_count(data, 4, BOX_STCO)
    return list(_read_array(data, 8, entry_count, "I", BOX_STCO))


def parse_co64(data: bytes) -> list[int]:
    """
    Parse Chunk Offset box (co64) - 64-bit offsets.

    Layout: version(1) + flags(3) + entry_count(4) + [offset(8)]...
    """
    parse_full_box_header(data, BOX_CO64)
    entry_count = _read_count(data, 4, BOX_CO64)
    return list(_read_array(data, 8, entry_count, "Q", BOX_CO64))


def parse_stsz(data: bytes, limit: int | None = None) -> list[int]:
    """
    Parse Sample Size box (stsz).

    Layout: version(1) + flags(3) + sample_size(4) + sample_count(4) + [size(4)]...

    A non-zero sample_size means every sample has that size; it is expanded
    to sample_count explicit entries, capped at ``limit`` when given.
    """
    parse_full_box_header(data, BOX_STSZ)
    if len(data) < 12:
        raise MalformedBoxError("stsz payload too short")
    sample_size, sample_count = struct.unpack_from(">II", data, 4)
    if limit is not None:
        sample_count = min(sample_count, limit)
    if sample_size > 0:
        return [sample_size] * sample_count
    return list(_read_array(data, 12, sample_count, "I", BOX_STSZ))


def parse_stz2(data: bytes, limit: int | None = None) -> list[int]:
    """
    Parse Compact Sample Size box (stz2).

    Layout: version(1) + flags(3) + reserved(3) + field_size(1) + sample_count(4) + [entries]
    where field_size is 4, 8 or 16 bits.
    """
    parse_full_box_header(data, BOX_STZ2)
    if len(data) < 12:
        raise MalformedBoxError("stz2 payload too short")
    field_size = data[7]
    sample_count = struct.unpack_from(">I", data, 8)[0]
    if limit is not None:
        sample_count = min(sample_count, limit)

    if field_size == 16:
        return list(_read_array(data, 12, sample_count, "H", BOX_STZ2))
    if field_size == 8:
        return list(_read_array(data, 12, sample_count, "B", BOX_STZ2))
    if field_size == 4:
        packed = _read_array(data, 12, (sample_count + 1) // 2, "B", BOX_STZ2)
        sizes = []
        for byte in packed:
            sizes.append(byte >> 4)
            sizes.append(byte & 0x0F)
        return sizes[:sample_count]
    raise MalformedBoxError(f"stz2 has invalid field size {field_size}")


def parse_stss(data: bytes) -> list[int]:
    """
    Parse Sync Sample box (stss) - keyframe sample numbers (1-based).

    Layout: version(1) + flags(3) + entry_count(4) + [sample_number(4)]...
    """
    parse_full_box_header(data, BOX_STSS)
    entry_count = _read_count(data, 4, BOX_STSS)
    return list(_read_array(data, 8, entry_count, "I", BOX_STSS))


DECODERS = {
    BOX_MVHD: parse_mvhd,
    BOX_MDHD: parse_mdhd,
    BOX_TKHD: parse_tkhd,
    BOX_HDLR: parse_hdlr,
    BOX_STSD: parse_stsd,
    BOX_STTS: parse_stts,
    BOX_CTTS: parse_ctts,
    BOX_STSC: parse_stsc,
    BOX_STCO: parse_stco,
    BOX_CO64: parse_co64,
    BOX_STSZ: parse_stsz,
    BOX_STZ2: parse_stz2,
    BOX_STSS: parse_stss,
}


def decode_box(box: Box):
    """Decode a leaf box with the decoder registered for its type."""
    if box.payload is None:
        raise ValueError(f"{box.type} is a container box and has no fixed layout")
    decoder = DECODERS.get(box.type)
    if decoder is None:
        raise ValueError(f"No decoder registered for box type {box.type!r}")
    return decoder(box.payload)
