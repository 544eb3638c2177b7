"""
Sample index of an assembled fragmented-MP4 stream.

Walks every moof of every fragment once and records, for each track run,
where its sample bytes live on disk. No sample data is kept in memory; the
remuxer copies the recorded byte ranges straight from the cache files.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from cachemux.errors import FragmentCorruptError, UnsupportedVariantError
from cachemux.models import AssembledStream, Fragment
from cachemux.remuxer.mp4_muxer import SampleEntry, TrackSamples
from cachemux.remuxer.mp4_parser import (
    SAMPLE_FLAG_NON_SYNC,
    BoxError,
    TrackInfo,
    find_box,
    iter_boxes,
    iter_top_level_boxes,
    parse_init_segment,
    parse_tfdt,
    parse_tfhd,
    parse_trun,
)

logger = logging.getLogger(__name__)

_HANDLERS = {"video": b"vide", "audio": b"soun"}


@dataclass(frozen=True)
class Chunk:
    """One track run: consecutive samples stored back to back in a fragment file."""

    fragment_index: int
    path: Path
    file_offset: int  # Absolute offset in the cache file, padding included
    length: int
    sample_count: int
    decode_time: int  # Track timescale ticks
    description_index: int = 1


@dataclass
class StreamIndex:
    info: TrackInfo
    samples: TrackSamples = field(default_factory=TrackSamples)
    chunks: list[Chunk] = field(default_factory=list)
    next_decode_time: int = 0

    @property
    def duration_seconds(self) -> float:
        return self.samples.total_duration / self.info.timescale


def _track_from_moov(moov_body: bytes, stream: AssembledStream, path: Path, fragment_index: int | None) -> TrackInfo:
    variant = stream.variant
    info = parse_init_segment(moov_body, _HANDLERS[variant.kind])
    if info is None:
        raise FragmentCorruptError(
            f"init segment has no {variant.kind} track",
            title_id=variant.title_id,
            path=path,
            fragment_index=fragment_index,
        )
    if info.protected:
        raise UnsupportedVariantError(
            f"{variant.label} carries encrypted sample entries ({info.sample_entry})",
            title_id=variant.title_id,
            path=path,
        )
    logger.debug(
        "[fragment_index] %s: track %d, %s, timescale %d",
        variant.label,
        info.track_id,
        info.sample_entry,
        info.timescale,
    )
    return info


def _read_init_track(stream: AssembledStream) -> TrackInfo | None:
    data = stream.read_init_segment()
    if data is None:
        return None
    try:
        for box_type, body in iter_boxes(data):
            if box_type == b"moov":
                return _track_from_moov(body, stream, stream.init_segment, None)
    except BoxError as e:
        raise FragmentCorruptError(
            f"unreadable init segment: {e}", title_id=stream.variant.title_id, path=stream.init_segment
        ) from e
    raise FragmentCorruptError(
        "init segment has no moov box", title_id=stream.variant.title_id, path=stream.init_segment
    )


def _index_traf(index: StreamIndex, traf: bytes, moof_start: int, payload: bytes, fragment: Fragment) -> int:
    """Record the runs of one track fragment. Returns the number of samples added."""
    info = index.info
    tfhd_body = find_box(traf, b"tfhd")
    if tfhd_body is None:
        raise BoxError("traf without tfhd")
    tfhd = parse_tfhd(tfhd_body)
    if tfhd.track_id != info.track_id:
        logger.debug("[fragment_index] Skipping traf for track %d", tfhd.track_id)
        return 0
    if find_box(traf, b"senc") is not None:
        raise UnsupportedVariantError("track fragment carries sample encryption data")

    tfdt_body = find_box(traf, b"tfdt")
    if tfdt_body is not None:
        decode_time = parse_tfdt(tfdt_body)
        if decode_time != index.next_decode_time:
            logger.warning(
                "[fragment_index] Fragment %d of %s starts at %d, expected %d; output timeline is made contiguous",
                fragment.index,
                fragment.path.parent.name,
                decode_time,
                index.next_decode_time,
            )

    default_duration = tfhd.default_sample_duration
    if default_duration is None:
        default_duration = info.default_sample_duration
    default_size = tfhd.default_sample_size
    if default_size is None:
        default_size = info.default_sample_size
    default_flags = tfhd.default_sample_flags
    if default_flags is None:
        default_flags = info.default_sample_flags
    description_index = tfhd.sample_description_index or info.default_sample_description_index

    # Offsets are relative to the explicit base, or to the enclosing moof
    base = tfhd.base_data_offset if tfhd.base_data_offset is not None else moof_start
    position = base
    added = 0
    for box_type, body in iter_boxes(traf):
        if box_type != b"trun":
            continue
        run = parse_trun(body, default_duration, default_size, default_flags, payload_size=len(payload))
        if run.data_offset is not None:
            position = base + run.data_offset
        end = position + run.byte_size
        if position < 0 or end > len(payload):
            raise BoxError(f"sample data [{position}, {end}) lies outside the {len(payload)}-byte fragment")
        if not run.samples:
            continue

        decode_time = index.next_decode_time
        for size, duration, flags, composition_offset in run.samples:
            is_sync = not info.is_video or not flags & SAMPLE_FLAG_NON_SYNC
            index.samples.add(SampleEntry(size, duration, is_sync, composition_offset))
            index.next_decode_time += duration
        index.samples.close_chunk(len(run.samples), description_index)
        index.chunks.append(
            Chunk(
                fragment_index=fragment.index,
                path=fragment.path,
                file_offset=fragment.offset + position,
                length=run.byte_size,
                sample_count=len(run.samples),
                decode_time=decode_time,
                description_index=description_index,
            )
        )
        added += len(run.samples)
        position = end
    return added


def _index_fragment(
    index: StreamIndex | None, stream: AssembledStream, fragment: Fragment, payload: bytes
) -> StreamIndex:
    added = 0
    duration_before = index.next_decode_time if index is not None else 0
    for box_type, header_size, total_size, data_offset in iter_top_level_boxes(payload, strict=True):
        body = payload[data_offset : data_offset - header_size + total_size]
        if box_type == b"moov":
            if index is None:
                index = StreamIndex(info=_track_from_moov(body, stream, fragment.path, fragment.index))
        elif box_type == b"moof":
            if index is None:
                raise BoxError("movie fragment appears before any init segment")
            for child_type, traf in iter_boxes(body):
                if child_type == b"traf":
                    added += _index_traf(index, traf, data_offset - header_size, payload, fragment)

    if index is None:
        raise BoxError("first fragment carries no moov and no init segment was found")
    if not added:
        logger.warning("[fragment_index] Fragment %d of %s holds no samples", fragment.index, stream.variant.label)

    declared = fragment.declared
    if declared is not None and declared.duration is not None:
        parsed = (index.next_decode_time - duration_before) / index.info.timescale
        if abs(parsed - declared.duration) > 0.001:
            logger.warning(
                "[fragment_index] Fragment %d of %s lasts %.3fs, metadata declares %.3fs",
                fragment.index,
                stream.variant.label,
                parsed,
                declared.duration,
            )
    return index


def index_stream(stream: AssembledStream) -> StreamIndex:
    """
    Build the sample index of one assembled stream.

    The track description comes from the stand-alone init segment, or from
    a moov at the start of fragment 0 when the variant has none.

    Raises:
        FragmentCorruptError: a fragment is not a well-formed fMP4 segment
            or the stream holds no samples at all.
        UnsupportedVariantError: the track is encrypted.
    """
    variant = stream.variant
    info = _read_init_track(stream)
    index = StreamIndex(info=info) if info is not None else None

    for fragment, payload in stream.iter_payloads():
        try:
            index = _index_fragment(index, stream, fragment, payload)
        except BoxError as e:
            raise FragmentCorruptError(
                str(e), title_id=variant.title_id, path=fragment.path, fragment_index=fragment.index
            ) from e
        except UnsupportedVariantError as e:
            if e.title_id is None:
                e.title_id = variant.title_id
            if e.path is None:
                e.path = fragment.path
            raise

    if index is None or not index.samples.samples:
        raise FragmentCorruptError("stream holds no samples", title_id=variant.title_id, path=variant.fragment_dir)

    logger.info(
        "[fragment_index] Indexed %s: %d samples in %d runs, %.3fs",
        variant.label,
        len(index.samples.samples),
        len(index.chunks),
        index.duration_seconds,
    )
    return index
