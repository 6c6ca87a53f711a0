"""
Codec identification from MP4 sample entries.

Builds RFC 6381 codec strings ("avc1.64001F", "mp4a.40.2") from the sample
entry FourCC and its codec configuration box, and reports whether a
video+audio combination plays natively in browsers.
"""

import logging

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────────────
# Browser-compatible codecs (work natively in HTML5 <video> with MP4)
# ────────────────────────────────────────────────────────────────────
BROWSER_VIDEO_CODECS = frozenset(
    {
        "avc1",  # H.264/AVC -- universal
        "avc3",
    }
)

BROWSER_AUDIO_CODECS = frozenset(
    {
        "mp4a",  # AAC family
    }
)

# MPEG-4 descriptor tags inside esds
_ES_DESCRIPTOR_TAG = 0x03
_DECODER_CONFIG_TAG = 0x04
_DECODER_SPECIFIC_INFO_TAG = 0x05


def _read_descriptor_header(data: bytes, pos: int) -> tuple[int, int, int] | None:
    """
    Read an MPEG-4 descriptor tag and its variable-length size.

    Returns:
        (tag, length, body_offset) or None if the data ends early.
    """
    if pos >= len(data):
        return None
    tag = data[pos]
    pos += 1
    length = 0
    for _ in range(4):
        if pos >= len(data):
            return None
        byte = data[pos]
        pos += 1
        length = (length << 7) | (byte & 0x7F)
        if not byte & 0x80:
            break
    return tag, length, pos


def parse_esds_codec(esds: bytes) -> tuple[int, int] | None:
    """
    Extract (objectTypeIndication, audio_object_type) from an esds payload.

    audio_object_type is 0 when the DecoderSpecificInfo is absent.
    Returns None if the descriptor chain is incomplete.
    """
    # version(1) + flags(3)
    header = _read_descriptor_header(esds, 4)
    if header is None or header[0] != _ES_DESCRIPTOR_TAG:
        return None
    _, _, pos = header
    if pos + 3 > len(esds):
        return None
    flags = esds[pos + 2]
    pos += 3  # ES_ID(2) + flags(1)
    if flags & 0x80:  # streamDependenceFlag
        pos += 2
    if flags & 0x40:  # URL_Flag
        if pos >= len(esds):
            return None
        pos += 1 + esds[pos]
    if flags & 0x20:  # OCRstreamFlag
        pos += 2

    header = _read_descriptor_header(esds, pos)
    if header is None or header[0] != _DECODER_CONFIG_TAG:
        return None
    _, _, pos = header
    if pos + 13 > len(esds):
        return None
    object_type = esds[pos]
    pos += 13  # objectTypeIndication(1) + streamType(1) + bufferSize(3) + max/avg bitrate(8)

    header = _read_descriptor_header(esds, pos)
    if header is None or header[0] != _DECODER_SPECIFIC_INFO_TAG or header[2] >= len(esds):
        return object_type, 0
    pos = header[2]
    audio_object_type = esds[pos] >> 3
    if audio_object_type == 31 and pos + 1 < len(esds):
        audio_object_type = 32 + (((esds[pos] & 0x07) << 3) | (esds[pos + 1] >> 5))
    return object_type, audio_object_type


def resolve_codec(fourcc: str, extra_type: str = "", extra_data: bytes = b"") -> str:
    """
    Resolve an RFC 6381 codec string for a sample entry.

    Falls back to the bare FourCC when the configuration box is missing or
    not understood.
    """
    if extra_type == "avcC" and len(extra_data) >= 4:
        profile, constraints, level = extra_data[1], extra_data[2], extra_data[3]
        return f"{fourcc}.{profile:02X}{constraints:02X}{level:02X}"

    if fourcc == "mp4a" and extra_type == "esds":
        parsed = parse_esds_codec(extra_data)
        if parsed is None:
            logger.debug("[codecs] Incomplete esds descriptor, using bare fourcc")
            return fourcc
        object_type, audio_object_type = parsed
        if audio_object_type:
            return f"mp4a.{object_type:02X}.{audio_object_type}"
        return f"mp4a.{object_type:02X}"

    return fourcc


def is_browser_compatible(video_codec: str, audio_codec: str) -> bool:
    """
    Check if a video+audio combination is fully browser-compatible.

    Returns True only if BOTH video and audio can be played natively in
    an HTML5 <video> element inside an MP4 container. An empty codec means
    the stream is absent.
    """
    video_ok = not video_codec or video_codec.split(".", 1)[0] in BROWSER_VIDEO_CODECS
    audio_ok = not audio_codec or audio_codec.split(".", 1)[0] in BROWSER_AUDIO_CODECS
    return video_ok and audio_ok
