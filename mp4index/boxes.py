"""
MP4 box (atom) tree.

Provides:
- read_box_header: read a box header from a ByteSource at an absolute offset
- parse_container: recursively split a payload into child boxes
- locate_metadata_box: scan top-level boxes for moov without touching mdat
- iter_top_level_boxes: list the top-level layout of a file

A box is either a container (its payload is a sequence of child boxes,
decided by the closed CONTAINER_BOXES registry) or an opaque leaf holding
its raw payload. Unknown box types are always leaves.
"""

import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass

from mp4index.const import BOX_HEADER_SIZE, BOX_MOOV, CONTAINER_BOXES, LARGE_BOX_HEADER_SIZE
from mp4index.errors import MalformedBoxError
from mp4index.source import ByteSource, read_exact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoxHeader:
    type: str
    size: int  # Total box size including the header
    offset: int  # Absolute file offset of the first header byte
    header_size: int = BOX_HEADER_SIZE


@dataclass(frozen=True)
class Box:
    """
    A parsed box.

    Exactly one of ``payload`` (leaf) and ``children`` (container) is set.
    ``children`` maps a type code to every child of that type in file order,
    so duplicated boxes such as several ``trak`` are preserved.
    """

    type: str
    size: int
    offset: int
    header_size: int = BOX_HEADER_SIZE
    payload: bytes | None = None
    children: dict[str, list["Box"]] | None = None

    @property
    def is_container(self) -> bool:
        return self.children is not None

    @property
    def end(self) -> int:
        return self.offset + self.size

    def get(self, box_type: str) -> "Box | None":
        """Return the first child of the given type, or None."""
        if not self.children:
            return None
        found = self.children.get(box_type)
        return found[0] if found else None

    def get_all(self, box_type: str) -> list["Box"]:
        """Return all children of the given type in file order."""
        if not self.children:
            return []
        return list(self.children.get(box_type, ()))

    def find(self, *path: str) -> "Box | None":
        """Walk a box hierarchy: box.find("mdia", "minf", "stbl")."""
        current = self
        for box_type in path:
            current = current.get(box_type)
            if current is None:
                return None
        return current


def _unpack_header(data: bytes, pos: int) -> tuple[str, int, int]:
    """
    Decode the header at ``data[pos:]``.

    Returns:
        (box_type, declared_size, header_size). A declared size of 1 is
        replaced with the 64-bit largesize that follows the type.
    """
    if len(data) - pos < BOX_HEADER_SIZE:
        raise MalformedBoxError(f"Truncated box header at relative offset {pos}")
    size, raw_type = struct.unpack_from(">I4s", data, pos)
    box_type = raw_type.decode("latin-1")
    if size == 1:
        if len(data) - pos < LARGE_BOX_HEADER_SIZE:
            raise MalformedBoxError(f"Truncated largesize header for {box_type!r} at relative offset {pos}")
        size = struct.unpack_from(">Q", data, pos + BOX_HEADER_SIZE)[0]
        return box_type, size, LARGE_BOX_HEADER_SIZE
    return box_type, size, BOX_HEADER_SIZE


def _make_box(box_type: str, size: int, offset: int, header_size: int, payload: bytes) -> Box:
    if box_type in CONTAINER_BOXES:
        children = parse_container(payload, offset + header_size)
        return Box(type=box_type, size=size, offset=offset, header_size=header_size, children=children)
    return Box(type=box_type, size=size, offset=offset, header_size=header_size, payload=payload)


def parse_container(data: bytes, base_offset: int = 0) -> dict[str, list[Box]]:
    """
    Parse ``data`` as a sequence of sibling boxes.

    Args:
        data: Raw payload of a container box (no header).
        base_offset: Absolute file offset of ``data[0]``, so child offsets
            are absolute.

    Raises:
        MalformedBoxError: a box declares a size smaller than its header or
            larger than the bytes remaining in ``data``.
    """
    children: dict[str, list[Box]] = {}
    pos = 0
    end = len(data)
    while pos < end:
        box_type, size, header_size = _unpack_header(data, pos)
        if size < header_size or pos + size > end:
            raise MalformedBoxError(
                f"Box {box_type!r} at offset {base_offset + pos} declares size {size}, "
                f"only {end - pos} bytes available"
            )
        payload = data[pos + header_size : pos + size]
        box = _make_box(box_type, size, base_offset + pos, header_size, payload)
        children.setdefault(box_type, []).append(box)
        pos += size
    return children


def read_box_header(source: ByteSource, offset: int) -> BoxHeader | None:
    """
    Read a box header at the given absolute offset.

    Returns None if the source ends before a complete header. A size of 0
    (box runs to end of file) is resolved against the source size.
    """
    data = source.read(offset, BOX_HEADER_SIZE)
    if len(data) < BOX_HEADER_SIZE:
        return None
    size, raw_type = struct.unpack(">I4s", data)
    header_size = BOX_HEADER_SIZE
    if size == 1:
        extended = source.read(offset + BOX_HEADER_SIZE, 8)
        if len(extended) < 8:
            return None
        size = struct.unpack(">Q", extended)[0]
        header_size = LARGE_BOX_HEADER_SIZE
    elif size == 0:
        size = source.size - offset
    return BoxHeader(type=raw_type.decode("latin-1"), size=size, offset=offset, header_size=header_size)


def iter_top_level_boxes(source: ByteSource) -> Iterator[BoxHeader]:
    """
    Iterate over top-level box headers without reading any payload.

    Yields:
        BoxHeader for each box, stopping at the first incomplete header.
    """
    offset = 0
    file_size = source.size
    while offset < file_size:
        header = read_box_header(source, offset)
        if header is None:
            break
        if header.size < header.header_size:
            raise MalformedBoxError(f"Top-level box {header.type!r} at offset {offset} declares size {header.size}")
        yield header
        offset += header.size


def locate_metadata_box(source: ByteSource) -> Box | None:
    """
    Find and parse the moov box.

    Sibling boxes (ftyp, free, and above all mdat) are skipped by their
    declared size and never parsed.

    Returns:
        The fully parsed moov Box, or None if the scan reaches end of file.

    Raises:
        ShortReadError: the moov payload extends past the end of the source.
        MalformedBoxError: a header declares a size smaller than itself.
    """
    offset = 0
    file_size = source.size
    while True:
        header = read_box_header(source, offset)
        if header is None:
            return None
        if header.size < header.header_size:
            raise MalformedBoxError(f"Top-level box {header.type!r} at offset {offset} declares size {header.size}")

        if header.type == BOX_MOOV:
            payload = read_exact(source, offset + header.header_size, header.size - header.header_size)
            logger.debug("[boxes] Found moov at offset %d (%d bytes)", offset, header.size)
            return _make_box(header.type, header.size, offset, header.header_size, payload)

        if offset + header.size >= file_size:
            return None
        logger.debug("[boxes] Skipping %s at offset %d (%d bytes)", header.type, offset, header.size)
        offset += header.size
