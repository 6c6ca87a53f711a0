"""
Sample table reconstruction.

Merges the run-length encoded stbl tables of one track into a flat list
of located samples in a single forward pass. The pass keeps one cursor
per table:

- stts run: drives the loop and the running decode timestamp
- sample number: indexes stsz, ctts and is compared against stss
- chunk: indexes stco/co64, with the byte position inside the chunk
- stsc run: how many samples the current chunk holds
- stss position: next expected sync sample
"""

import logging
from dataclasses import dataclass, field

from mp4index.errors import InconsistentSampleCountError, MissingChunkTableError
from mp4index.models import AudioSample, Sample, VideoSample

logger = logging.getLogger(__name__)


@dataclass
class SampleTables:
    """The decoded stbl tables of one track. Absent tables are empty."""

    time_to_sample: list[tuple[int, int]] = field(default_factory=list)  # stts (count, delta)
    sample_to_chunk: list[tuple[int, int]] = field(default_factory=list)  # stsc (first_chunk 1-based, per chunk)
    chunk_offsets: list[int] = field(default_factory=list)  # stco or co64
    sample_sizes: list[int] = field(default_factory=list)  # stsz / stz2, one entry per sample
    sync_samples: list[int] = field(default_factory=list)  # stss, 1-based
    composition_offsets: list[int] = field(default_factory=list)  # ctts, expanded per sample

    @property
    def sample_count(self) -> int:
        return sum(count for count, _ in self.time_to_sample)


def build_samples(tables: SampleTables, timescale: int, is_video: bool) -> list[Sample]:
    """
    Reconstruct the ordered sample list of a track.

    Samples with a size of 0 are dropped from the result, but their
    duration still advances the timestamp and their (zero) size still
    counts toward the position inside the chunk.

    A track without an stss box gets no keyframes.

    Raises:
        MissingChunkTableError: the track has samples but no chunk offsets.
        InconsistentSampleCountError: stsz is shorter than the sample count
            implied by stts, or a non-empty sample lies past the last chunk.
            Trailing zero-size samples need no chunk.
    """
    total = tables.sample_count
    if total == 0:
        return []

    chunk_offsets = tables.chunk_offsets
    sizes = tables.sample_sizes
    sample_to_chunk = tables.sample_to_chunk
    sync_samples = tables.sync_samples
    compositions = tables.composition_offsets

    if not chunk_offsets:
        raise MissingChunkTableError(f"Track has {total} samples but no chunk offsets")
    if len(sizes) < total:
        raise InconsistentSampleCountError(f"stts describes {total} samples but stsz holds {len(sizes)}")

    samples: list[Sample] = []
    timestamp = 0
    index = 0
    chunk = 0
    chunk_position = 0
    chunk_samples = 0
    keyframe_index = 0
    # 0 samples per chunk means every chunk holds one sample
    samples_per_chunk = sample_to_chunk[0][1] if sample_to_chunk else 0
    next_run = 1

    for run_count, duration in tables.time_to_sample:
        for _ in range(run_count):
            size = sizes[index]
            keyframe = False
            if is_video and keyframe_index < len(sync_samples) and sync_samples[keyframe_index] == index + 1:
                keyframe = True
                keyframe_index += 1

            if size > 0:
                if chunk >= len(chunk_offsets):
                    raise InconsistentSampleCountError(
                        f"Sample {index + 1} falls in chunk {chunk + 1}, only {len(chunk_offsets)} chunks exist"
                    )
                offset = chunk_offsets[chunk] + chunk_position
                if is_video:
                    samples.append(
                        VideoSample(
                            timestamp=timestamp,
                            timescale=timescale,
                            size=size,
                            offset=offset,
                            composition_offset=compositions[index] if index < len(compositions) else 0,
                            keyframe=keyframe,
                        )
                    )
                else:
                    samples.append(AudioSample(timestamp=timestamp, timescale=timescale, size=size, offset=offset))

            chunk_samples += 1
            if chunk_samples < samples_per_chunk:
                chunk_position += size
            else:
                chunk_samples = 0
                chunk_position = 0
                chunk += 1
                if next_run < len(sample_to_chunk) and chunk + 1 >= sample_to_chunk[next_run][0]:
                    samples_per_chunk = sample_to_chunk[next_run][1]
                    next_run += 1

            timestamp += duration
            index += 1

    if len(samples) < total:
        logger.debug("[sample_table] Dropped %d zero-size samples", total - len(samples))
    return samples
