import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from mp4index.boxes import iter_top_level_boxes
from mp4index.codecs import is_browser_compatible
from mp4index.configs import settings
from mp4index.errors import MalformedBoxError, Mp4IndexError
from mp4index.models import AudioTrack, Movie, Track, VideoTrack
from mp4index.parser import parse
from mp4index.schemas import IndexParams, MovieResponse, SampleResponse, TopLevelBox, TrackResponse
from mp4index.source import DownloadError, HTTPSource

index_router = APIRouter()
logger = logging.getLogger(__name__)


def get_source_factory():
    """Return the callable used to open a remote file as a ByteSource."""
    return HTTPSource


def _track_response(track: Track, include_samples: bool) -> TrackResponse:
    response = TrackResponse(
        track_id=track.track_id,
        kind=track.kind,
        fourcc=track.fourcc,
        codec=track.codec,
        timescale=track.timescale,
        duration=track.duration,
        duration_seconds=track.duration_seconds,
        sample_count=len(track.samples),
    )
    if isinstance(track, AudioTrack):
        response.channels = track.channels
        response.sample_rate = track.sample_rate
        response.sample_size = track.sample_size
    elif isinstance(track, VideoTrack):
        response.width = track.width
        response.height = track.height
        response.keyframe_count = len(track.keyframes)

    if include_samples:
        limit = settings.max_samples_per_response
        samples = track.samples[:limit]
        response.samples_truncated = len(track.samples) > limit
        if isinstance(track, VideoTrack):
            response.samples = [
                SampleResponse(
                    timestamp=s.timestamp,
                    size=s.size,
                    offset=s.offset,
                    composition_offset=s.composition_offset,
                    keyframe=s.keyframe,
                )
                for s in samples
            ]
        else:
            response.samples = [SampleResponse(timestamp=s.timestamp, size=s.size, offset=s.offset) for s in samples]
    return response


def list_top_level_boxes(source) -> list[TopLevelBox]:
    """
    List the top-level layout of a file.

    A malformed header ends the listing with the boxes read so far; the
    layout is informational and never fails an index that parsed.
    """
    boxes = []
    try:
        for header in iter_top_level_boxes(source):
            boxes.append(TopLevelBox(type=header.type, offset=header.offset, size=header.size))
    except MalformedBoxError as e:
        logger.warning(f"Top-level box listing stopped early: {e}")
    return boxes


def build_movie_response(
    movie: Movie, boxes: list[TopLevelBox], include_samples: bool = False, track_id: int | None = None
) -> MovieResponse:
    video_codec = movie.video_tracks[0].codec if movie.video_tracks else ""
    audio_codec = movie.audio_tracks[0].codec if movie.audio_tracks else ""
    tracks = [t for t in movie.tracks if track_id is None or t.track_id == track_id]
    return MovieResponse(
        timescale=movie.timescale,
        duration=movie.duration,
        duration_seconds=movie.duration_seconds,
        browser_compatible=is_browser_compatible(video_codec, audio_codec),
        boxes=boxes,
        tracks=[_track_response(track, include_samples) for track in tracks],
    )


@index_router.get("/index", response_model=MovieResponse, summary="Index the samples of a remote MP4 file")
def index_media(
    index_params: Annotated[IndexParams, Query()],
    source_factory=Depends(get_source_factory),
):
    """Locate the moov box of a remote MP4 and return its tracks and sample index."""
    source = source_factory(index_params.destination)
    try:
        movie = parse(source)
        boxes = list_top_level_boxes(source)
    except Mp4IndexError as e:
        logger.warning(f"Failed to index {index_params.destination}: {e}")
        raise HTTPException(status_code=422, detail=f"{type(e).__name__}: {e}")
    except DownloadError as e:
        logger.error(f"Error downloading {index_params.destination}: {e.message}")
        status_code = e.status_code if 400 <= e.status_code < 600 else 502
        raise HTTPException(status_code=status_code, detail=e.message)
    finally:
        if hasattr(source, "close"):
            source.close()

    if index_params.track_id is not None and not any(t.track_id == index_params.track_id for t in movie.tracks):
        raise HTTPException(status_code=404, detail=f"Track {index_params.track_id} not found")

    return build_movie_response(movie, boxes, index_params.include_samples, index_params.track_id)
