from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class GenericParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IndexParams(GenericParams):
    destination: str = Field(..., description="The URL of the MP4 file to index.", alias="d")
    include_samples: bool = Field(False, description="Whether to include per-sample records for each track.")
    track_id: Optional[int] = Field(None, description="Only report the track with this id.")


class TopLevelBox(BaseModel):
    type: str = Field(..., description="Four character box type.")
    offset: int = Field(..., description="Absolute file offset of the box header.")
    size: int = Field(..., description="Total box size including its header.")


class SampleResponse(BaseModel):
    timestamp: int = Field(..., description="Decode time in track timescale units.")
    size: int = Field(..., description="Sample size in bytes.")
    offset: int = Field(..., description="Absolute file offset of the sample data.")
    composition_offset: Optional[int] = Field(None, description="Composition time offset (video only).")
    keyframe: Optional[bool] = Field(None, description="Whether the sample is a sync sample (video only).")


class TrackResponse(BaseModel):
    track_id: int
    kind: str = Field(..., description="Either 'audio' or 'video'.")
    fourcc: str
    codec: str = Field(..., description="RFC 6381 codec string.")
    timescale: int
    duration: int
    duration_seconds: float
    sample_count: int
    channels: Optional[int] = None
    sample_rate: Optional[int] = None
    sample_size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    keyframe_count: Optional[int] = None
    samples: Optional[list[SampleResponse]] = Field(None, description="Per-sample index, when requested.")
    samples_truncated: bool = Field(False, description="Whether the sample list was capped.")


class MovieResponse(BaseModel):
    timescale: int
    duration: int
    duration_seconds: float
    browser_compatible: bool = Field(..., description="Whether the codecs play natively in HTML5 video.")
    boxes: list[TopLevelBox] = Field(default_factory=list, description="Top-level box layout.")
    tracks: list[TrackResponse] = Field(default_factory=list)
