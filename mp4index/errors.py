class Mp4IndexError(Exception):
    """Base exception for all MP4 indexing failures."""

    pass


class MalformedBoxError(Mp4IndexError):
    """A box header declares a size smaller than its header or past the end of its parent."""

    pass


class MissingMetadataError(Mp4IndexError):
    """The top-level scan reached the end of the file without finding a moov box."""

    pass


class ShortReadError(Mp4IndexError):
    def __init__(self, offset: int, expected: int, received: int):
        self.offset = offset
        self.expected = expected
        self.received = received
        super().__init__(f"Short read at offset {offset}: expected {expected} bytes, got {received}")


class MissingChunkTableError(Mp4IndexError):
    """A track has samples but no stco/co64 entries to place them."""

    pass


class InconsistentSampleCountError(Mp4IndexError):
    """One sample table is shorter than the sample count implied by another."""

    pass
