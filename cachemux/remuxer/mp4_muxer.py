"""
Pure Python MP4 box builder for standard (moov-first) MP4 and MOV files.

File layout: ftyp | moov (full sample tables) | mdat

Sample descriptions (stsd) are copied byte-for-byte from the source init
segments, so codec configuration (avcC, hvcC, esds, ...) is never rebuilt.
Only the container-level index is computed here: per-sample sizes,
durations, sync flags and composition offsets, plus the chunk offsets that
let a player seek anywhere in the file.
"""

import logging
import struct
from dataclasses import dataclass, field

from cachemux.remuxer.codec_utils import CONTAINER_BRANDS
from cachemux.remuxer.mp4_parser import TrackInfo

logger = logging.getLogger(__name__)


# =============================================================================
# Sample metadata
# =============================================================================


@dataclass
class SampleEntry:
    """Metadata for a single sample (frame) in the MP4 file."""

    size: int  # Sample size in bytes
    duration: int  # Duration in track timescale ticks
    is_sync: bool  # True for keyframes (video) or all audio samples
    composition_offset: int = 0  # CTS offset (for B-frames)


@dataclass
class TrackSamples:
    """Collected sample metadata for one track during muxing."""

    samples: list[SampleEntry] = field(default_factory=list)
    chunk_layout: list[tuple[int, int]] = field(default_factory=list)  # (samples_per_chunk, description_index)
    chunk_offsets: list[int] = field(default_factory=list)  # Absolute byte offset of each chunk in the file
    total_size: int = 0  # Total bytes of all samples
    total_duration: int = 0  # Total duration in timescale ticks

    def add(self, sample: SampleEntry) -> None:
        self.samples.append(sample)
        self.total_size += sample.size
        self.total_duration += sample.duration

    def close_chunk(self, sample_count: int, description_index: int = 1) -> None:
        """Record that the last ``sample_count`` samples form one chunk."""
        self.chunk_layout.append((sample_count, description_index))


# =============================================================================
# Box building primitives
# =============================================================================


def build_box(box_type: bytes, payload: bytes) -> bytes:
    """Build a standard MP4 box: [4-byte size][4-byte type][payload]."""
    size = 8 + len(payload)
    return struct.pack(">I", size) + box_type + payload


def build_full_box(box_type: bytes, version: int, flags: int, payload: bytes) -> bytes:
    """Build a full box with version and flags."""
    inner = struct.pack(">I", (version << 24) | (flags & 0xFFFFFF)) + payload
    return build_box(box_type, inner)


# =============================================================================
# ftyp box
# =============================================================================


def build_ftyp(container: str = "mp4") -> bytes:
    """Build the File Type box for the requested container."""
    major, minor, compatible = CONTAINER_BRANDS[container]
    payload = major + struct.pack(">I", minor) + b"".join(compatible)
    return build_box(b"ftyp", payload)


# =============================================================================
# moov box and children
# =============================================================================

_UNITY_MATRIX = struct.pack(">9I", 0x00010000, 0, 0, 0, 0x00010000, 0, 0, 0, 0x40000000)


def build_mvhd(timescale: int, duration: int, next_track_id: int) -> bytes:
    """Build Movie Header box (mvhd), version 0 (version 1 when duration needs 64 bits)."""
    version = 1 if duration > 0xFFFFFFFF else 0
    payload = bytearray()
    if version == 1:
        payload.extend(struct.pack(">QQIQ", 0, 0, timescale, duration))  # creation, modification
    else:
        payload.extend(struct.pack(">IIII", 0, 0, timescale, duration))
    payload.extend(struct.pack(">I", 0x00010000))  # rate = 1.0
    payload.extend(struct.pack(">H", 0x0100))  # volume = 1.0
    payload.extend(b"\x00" * 10)  # reserved
    payload.extend(_UNITY_MATRIX)
    payload.extend(b"\x00" * 24)  # pre_defined
    payload.extend(struct.pack(">I", next_track_id))
    return build_full_box(b"mvhd", version, 0, bytes(payload))


def build_tkhd(track_id: int, duration: int, width: int = 0, height: int = 0, is_audio: bool = False) -> bytes:
    """Build Track Header box (tkhd). ``width``/``height`` are 16.16 fixed point."""
    flags = 0x000003  # track_enabled | track_in_movie
    version = 1 if duration > 0xFFFFFFFF else 0
    payload = bytearray()
    if version == 1:
        payload.extend(struct.pack(">QQI", 0, 0, track_id))
        payload.extend(b"\x00" * 4)  # reserved
        payload.extend(struct.pack(">Q", duration))
    else:
        payload.extend(struct.pack(">III", 0, 0, track_id))
        payload.extend(b"\x00" * 4)  # reserved
        payload.extend(struct.pack(">I", duration))
    payload.extend(b"\x00" * 8)  # reserved
    payload.extend(struct.pack(">H", 0))  # layer
    payload.extend(struct.pack(">H", 0 if not is_audio else 1))  # alternate_group
    payload.extend(struct.pack(">H", 0x0100 if is_audio else 0))  # volume
    payload.extend(b"\x00" * 2)  # reserved
    payload.extend(_UNITY_MATRIX)
    payload.extend(struct.pack(">II", width, height))
    return build_full_box(b"tkhd", version, flags, bytes(payload))


def build_mdhd(timescale: int, duration: int, language: int = 0x55C4) -> bytes:
    """Build Media Header box (mdhd). ``language`` is packed ISO-639-2/T, default 'und'."""
    version = 1 if duration > 0xFFFFFFFF else 0
    payload = bytearray()
    if version == 1:
        payload.extend(struct.pack(">QQIQ", 0, 0, timescale, duration))
    else:
        payload.extend(struct.pack(">IIII", 0, 0, timescale, duration))
    payload.extend(struct.pack(">H", language))
    payload.extend(struct.pack(">H", 0))  # pre_defined
    return build_full_box(b"mdhd", version, 0, bytes(payload))


def build_hdlr(handler_type: bytes, name: str) -> bytes:
    """Build Handler Reference box (hdlr)."""
    payload = bytearray()
    payload.extend(b"\x00" * 4)  # pre_defined
    payload.extend(handler_type)  # handler_type (4 bytes)
    payload.extend(b"\x00" * 12)  # reserved
    payload.extend(name.encode("utf-8") + b"\x00")
    return build_full_box(b"hdlr", 0, 0, bytes(payload))


def build_vmhd() -> bytes:
    """Build Video Media Header box (vmhd)."""
    payload = struct.pack(">H", 0)  # graphicsmode
    payload += struct.pack(">3H", 0, 0, 0)  # opcolor
    return build_full_box(b"vmhd", 0, 1, payload)  # flags=1


def build_smhd() -> bytes:
    """Build Sound Media Header box (smhd)."""
    payload = struct.pack(">H", 0)  # balance
    payload += b"\x00\x00"  # reserved
    return build_full_box(b"smhd", 0, 0, payload)


def build_dinf() -> bytes:
    """Build Data Information box (dinf) with a self-contained URL entry."""
    url_box = build_full_box(b"url ", 0, 1, b"")  # flags=1 = self-contained
    dref = build_full_box(b"dref", 0, 0, struct.pack(">I", 1) + url_box)  # entry_count=1
    return build_box(b"dinf", dref)


# =============================================================================
# Sample table boxes (stbl)
# =============================================================================


def _run_length(values: list[int]) -> list[tuple[int, int]]:
    """Collapse consecutive equal values into (count, value) pairs."""
    entries: list[tuple[int, int]] = []
    for value in values:
        if entries and entries[-1][1] == value:
            entries[-1] = (entries[-1][0] + 1, value)
        else:
            entries.append((1, value))
    return entries


def build_stts(samples: list[SampleEntry]) -> bytes:
    """
    Build Time-to-Sample box (stts) with run-length encoding.

    Groups consecutive samples with the same duration.
    """
    entries = _run_length([s.duration for s in samples])
    payload = bytearray(struct.pack(">I", len(entries)))
    for count, delta in entries:
        payload.extend(struct.pack(">II", count, delta))
    return build_full_box(b"stts", 0, 0, bytes(payload))


def build_stss(samples: list[SampleEntry]) -> bytes | None:
    """
    Build Sync Sample box (stss) listing keyframe indices.

    Returns None if all samples are sync (audio tracks), as stss is
    only needed when not all samples are sync points.
    """
    sync_indices = [i + 1 for i, s in enumerate(samples) if s.is_sync]  # 1-based

    if len(sync_indices) == len(samples):
        return None  # All samples are sync; omit stss

    payload = bytearray(struct.pack(">I", len(sync_indices)))
    for idx in sync_indices:
        payload.extend(struct.pack(">I", idx))
    return build_full_box(b"stss", 0, 0, bytes(payload))


def build_ctts(samples: list[SampleEntry]) -> bytes | None:
    """
    Build Composition Time-to-Sample box (ctts) for B-frame offsets.

    Returns None if no samples have composition offsets. Version 1 (signed
    offsets) is used when any offset is negative.
    """
    if not any(s.composition_offset != 0 for s in samples):
        return None

    entries = _run_length([s.composition_offset for s in samples])
    version = 1 if any(offset < 0 for _, offset in entries) else 0
    fmt = ">Ii" if version == 1 else ">II"

    payload = bytearray(struct.pack(">I", len(entries)))
    for count, offset in entries:
        payload.extend(struct.pack(fmt, count, offset))
    return build_full_box(b"ctts", version, 0, bytes(payload))


def build_stsz(samples: list[SampleEntry]) -> bytes:
    """Build Sample Size box (stsz)."""
    payload = bytearray()

    if samples and all(s.size == samples[0].size for s in samples):
        payload.extend(struct.pack(">I", samples[0].size))  # sample_size (uniform)
        payload.extend(struct.pack(">I", len(samples)))  # sample_count
    else:
        payload.extend(struct.pack(">I", 0))  # sample_size = 0 (variable)
        payload.extend(struct.pack(">I", len(samples)))
        for s in samples:
            payload.extend(struct.pack(">I", s.size))

    return build_full_box(b"stsz", 0, 0, bytes(payload))


def build_stsc(chunk_layout: list[tuple[int, int]]) -> bytes:
    """
    Build Sample-to-Chunk box (stsc).

    ``chunk_layout`` holds (samples_per_chunk, sample_description_index) for
    every chunk; runs of identical chunks share one entry.
    """
    entries = []
    for chunk_number, layout in enumerate(chunk_layout, start=1):
        if not entries or entries[-1][1:] != layout:
            entries.append((chunk_number, *layout))

    payload = bytearray(struct.pack(">I", len(entries)))
    for first_chunk, samples_per_chunk, description_index in entries:
        payload.extend(struct.pack(">III", first_chunk, samples_per_chunk, description_index))
    return build_full_box(b"stsc", 0, 0, bytes(payload))


def build_stco(offsets: list[int]) -> bytes:
    """Build Chunk Offset box (stco, 32-bit offsets)."""
    payload = bytearray(struct.pack(">I", len(offsets)))
    for off in offsets:
        payload.extend(struct.pack(">I", off))
    return build_full_box(b"stco", 0, 0, bytes(payload))


def build_co64(offsets: list[int]) -> bytes:
    """Build Chunk Offset box (co64, 64-bit offsets) for large files."""
    payload = bytearray(struct.pack(">I", len(offsets)))
    for off in offsets:
        payload.extend(struct.pack(">Q", off))
    return build_full_box(b"co64", 0, 0, bytes(payload))


# =============================================================================
# Track building (assembles trak box hierarchy)
# =============================================================================


def build_stbl(track_samples: TrackSamples, stsd: bytes) -> bytes:
    """Build the Sample Table box (stbl) for a track."""
    children = bytearray()
    children.extend(stsd)
    children.extend(build_stts(track_samples.samples))

    stss = build_stss(track_samples.samples)
    if stss is not None:
        children.extend(stss)

    ctts = build_ctts(track_samples.samples)
    if ctts is not None:
        children.extend(ctts)

    children.extend(build_stsz(track_samples.samples))
    children.extend(build_stsc(track_samples.chunk_layout))

    # Use co64 if any offset exceeds 32-bit range
    needs_64 = any(off > 0xFFFFFFFF for off in track_samples.chunk_offsets)
    if needs_64:
        children.extend(build_co64(track_samples.chunk_offsets))
    else:
        children.extend(build_stco(track_samples.chunk_offsets))

    return build_box(b"stbl", bytes(children))


def build_minf(is_audio: bool, stbl: bytes) -> bytes:
    """Build Media Information box (minf)."""
    children = bytearray()
    if is_audio:
        children.extend(build_smhd())
    else:
        children.extend(build_vmhd())
    children.extend(build_dinf())
    children.extend(stbl)
    return build_box(b"minf", bytes(children))


def build_mdia(
    timescale: int, duration: int, language: int, handler_type: bytes, handler_name: str, minf: bytes
) -> bytes:
    """Build Media box (mdia)."""
    children = bytearray()
    children.extend(build_mdhd(timescale, duration, language))
    children.extend(build_hdlr(handler_type, handler_name))
    children.extend(minf)
    return build_box(b"mdia", bytes(children))


def to_movie_time(duration: int, timescale: int, movie_timescale: int) -> int:
    if timescale <= 0:
        return 0
    return duration * movie_timescale // timescale


def build_trak(info: TrackInfo, track_id: int, track_samples: TrackSamples, movie_timescale: int) -> bytes:
    """Build a complete trak box for a video or audio track."""
    is_audio = not info.is_video
    duration_in_track = track_samples.total_duration
    duration_in_movie = to_movie_time(duration_in_track, info.timescale, movie_timescale)

    if is_audio:
        tkhd = build_tkhd(track_id, duration_in_movie, is_audio=True)
    else:
        tkhd = build_tkhd(track_id, duration_in_movie, width=info.width, height=info.height)
    stbl = build_stbl(track_samples, info.stsd)
    minf = build_minf(is_audio=is_audio, stbl=stbl)
    handler_name = "SoundHandler" if is_audio else "VideoHandler"
    mdia = build_mdia(info.timescale, duration_in_track, info.language, info.handler, handler_name, minf)

    return build_box(b"trak", tkhd + mdia)


# =============================================================================
# Complete moov builder
# =============================================================================


def build_moov(tracks: list[tuple[TrackInfo, TrackSamples]], movie_timescale: int = 1000) -> bytes:
    """
    Build the complete moov box with all track metadata.

    Args:
        tracks: (track description, collected samples) per track; track IDs
            are assigned 1..N in list order.
        movie_timescale: Movie header timescale (default 1000 = ms).

    Returns:
        Complete moov box bytes.
    """
    movie_duration = max(
        (to_movie_time(samples.total_duration, info.timescale, movie_timescale) for info, samples in tracks),
        default=0,
    )

    children = bytearray()
    children.extend(build_mvhd(movie_timescale, movie_duration, next_track_id=len(tracks) + 1))
    for track_id, (info, samples) in enumerate(tracks, start=1):
        children.extend(build_trak(info, track_id, samples, movie_timescale))

    return build_box(b"moov", bytes(children))


# =============================================================================
# mdat box header
# =============================================================================


def build_mdat_header(data_size: int) -> bytes:
    """
    Build the mdat box header.

    Uses extended (64-bit) size if data_size + header > 4GB.
    """
    total = 8 + data_size  # header(8) + data
    if total <= 0xFFFFFFFF:
        return struct.pack(">I", total) + b"mdat"
    # Extended size: size field = 1, then 8-byte actual size
    total_ext = 16 + data_size  # header(16) + data
    return struct.pack(">I", 1) + b"mdat" + struct.pack(">Q", total_ext)


# =============================================================================
# MP4 Builder (high-level orchestrator)
# =============================================================================


class MP4Builder:
    """
    High-level MP4 file builder.

    Collects per-track sample tables and the order in which chunks will be
    written to mdat, then produces the file header (ftyp + moov) and mdat
    header. The caller streams the chunk bytes after them in the same order.

    Usage:
        builder = MP4Builder("mp4")
        video_id = builder.add_track(video_info, video_samples)
        audio_id = builder.add_track(audio_info, audio_samples)
        for track_id, size in interleaved_chunks:
            builder.add_chunk(track_id, size)
        header_bytes, mdat_header = builder.finalize()
    """

    def __init__(self, container: str = "mp4", movie_timescale: int = 1000) -> None:
        self._container = container
        self._movie_timescale = movie_timescale
        self._tracks: list[tuple[TrackInfo, TrackSamples]] = []
        self._chunk_order: list[tuple[int, int]] = []  # (track_id, chunk size) in mdat order
        self._mdat_size: int = 0

    def add_track(self, info: TrackInfo, samples: TrackSamples) -> int:
        """Register a track and return the track ID it will carry in the output."""
        self._tracks.append((info, samples))
        return len(self._tracks)

    def add_chunk(self, track_id: int, size: int) -> None:
        """Append the next chunk of ``track_id`` to the mdat layout."""
        self._chunk_order.append((track_id, size))
        self._mdat_size += size

    @property
    def mdat_size(self) -> int:
        return self._mdat_size

    def finalize(self) -> tuple[bytes, bytes]:
        """
        Build the file header and mdat header.

        Since moov needs accurate chunk offsets (stco/co64) that depend on
        moov's own size, we do a two-pass approach:
        1. Build moov with placeholder offsets to determine its size
        2. Rebuild moov with correct offsets

        Returns:
            (ftyp_moov_bytes, mdat_header_bytes)
        """
        for track_id, (_, samples) in enumerate(self._tracks, start=1):
            placed = sum(1 for tid, _ in self._chunk_order if tid == track_id)
            if placed != len(samples.chunk_layout):
                raise ValueError(f"track {track_id}: {placed} chunks placed, {len(samples.chunk_layout)} described")

        ftyp = build_ftyp(self._container)
        mdat_hdr = build_mdat_header(self._mdat_size)

        # Pass 1: Build moov with placeholder (0) offsets to measure its size
        self._compute_chunk_offsets(0)
        moov_pass1 = build_moov(self._tracks, self._movie_timescale)

        # Calculate actual mdat data start: ftyp + moov + mdat_header
        mdat_data_start = len(ftyp) + len(moov_pass1) + len(mdat_hdr)

        # Pass 2: Rebuild moov with correct chunk offsets
        self._compute_chunk_offsets(mdat_data_start)
        moov_final = build_moov(self._tracks, self._movie_timescale)

        if len(moov_final) != len(moov_pass1):
            # Size changed (offsets crossed the 32/64-bit boundary). Redo.
            mdat_data_start = len(ftyp) + len(moov_final) + len(mdat_hdr)
            self._compute_chunk_offsets(mdat_data_start)
            moov_final = build_moov(self._tracks, self._movie_timescale)

        logger.info(
            "[mp4_muxer] Finalized: ftyp=%d moov=%d mdat=%d (header=%d) %s",
            len(ftyp),
            len(moov_final),
            self._mdat_size,
            len(mdat_hdr),
            " ".join(
                f"{info.handler.decode('ascii', 'replace')}={len(samples.samples)} samples"
                for info, samples in self._tracks
            ),
        )

        return ftyp + moov_final, mdat_hdr

    def _compute_chunk_offsets(self, mdat_data_start: int) -> None:
        """Compute absolute byte offsets for each chunk in the mdat."""
        offsets: list[list[int]] = [[] for _ in self._tracks]
        offset = mdat_data_start
        for track_id, size in self._chunk_order:
            offsets[track_id - 1].append(offset)
            offset += size
        for (_, samples), track_offsets in zip(self._tracks, offsets):
            samples.chunk_offsets = track_offsets
