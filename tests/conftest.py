"""
Pytest configuration for the MP4 indexer tests.

Reference files are assembled in memory by ``mp4_builders`` so no media
fixtures are needed.
"""

import pytest

from mp4_builders import build_reference_file


@pytest.fixture
def reference_file() -> tuple[bytes, int]:
    """ftyp | mdat | moov file with video, audio and hint tracks, plus its media data offset."""
    return build_reference_file()


@pytest.fixture
def reference_file_moov_first() -> tuple[bytes, int]:
    """Same content laid out as ftyp | moov | mdat (faststart)."""
    return build_reference_file(moov_first=True)


@pytest.fixture
def reference_path(tmp_path, reference_file):
    """The reference file written to disk."""
    data, _ = reference_file
    path = tmp_path / "reference.mp4"
    path.write_bytes(data)
    return path
