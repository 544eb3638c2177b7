"""
MP4 / fragmented MP4 box parser.

Provides:
- Top-level and nested box scanning
- Init segment parsing (trak description, trex defaults, protection detection)
- Movie fragment parsers (tfhd, tfdt, trun)
- Sample table parsers (stco, co64, stss, stsz, stts, stsc, ctts) and
  probe_mp4(): a seek index read back from a finished moov-first file

The sample table parsers are the inverse of the builder functions in mp4_muxer.py.
"""

import bisect
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path

from cachemux.const import ENCRYPTED_SAMPLE_ENTRIES

logger = logging.getLogger(__name__)

# =============================================================================
# MP4 Box Utilities
# =============================================================================

# Minimum bytes needed to read a standard box header
_BOX_HEADER_SIZE = 8


class BoxError(ValueError):
    """Raised when box structure is truncated or inconsistent."""


def read_box_header(data: bytes, offset: int) -> tuple[bytes, int, int] | None:
    """
    Read a box header at the given offset.

    Returns:
        (box_type, header_size, total_box_size) or None if not enough data.
    """
    if offset + _BOX_HEADER_SIZE > len(data):
        return None

    size, box_type = struct.unpack_from(">I4s", data, offset)
    header_size = 8

    if size == 1:  # Extended size (64-bit)
        if offset + 16 > len(data):
            return None
        size = struct.unpack_from(">Q", data, offset + 8)[0]
        header_size = 16
    elif size == 0:  # Box extends to end of data
        size = len(data) - offset

    return box_type, header_size, size


def iter_top_level_boxes(data: bytes, strict: bool = False):
    """
    Iterate over top-level box headers.

    With ``strict`` set, a box whose declared size is smaller than its
    header or runs past the end of ``data`` raises ``BoxError`` instead of
    ending the iteration.

    Yields:
        (box_type, header_size, total_size, data_offset)
    """
    offset = 0
    while offset < len(data):
        result = read_box_header(data, offset)
        if result is None:
            if strict:
                raise BoxError(f"truncated box header at offset {offset}")
            break
        box_type, header_size, total_size = result
        if total_size < header_size or offset + total_size > len(data):
            if strict:
                raise BoxError(
                    f"box {box_type!r} at offset {offset} declares {total_size} bytes, {len(data) - offset} available"
                )
            break
        yield box_type, header_size, total_size, offset + header_size
        offset += total_size


def find_box(data: bytes, target: bytes) -> bytes | None:
    """Find a box by type and return its body (data after header)."""
    for box_type, header_size, total_size, data_offset in iter_top_level_boxes(data):
        if box_type == target:
            return data[data_offset : data_offset - header_size + total_size]
    return None


def find_box_raw(data: bytes, target: bytes) -> bytes | None:
    """Find a box by type and return it whole, header included."""
    for box_type, header_size, total_size, data_offset in iter_top_level_boxes(data):
        if box_type == target:
            start = data_offset - header_size
            return data[start : start + total_size]
    return None


def iter_boxes(data: bytes):
    """Iterate over child boxes: yields (box_type, box_body_bytes)."""
    for box_type, header_size, total_size, data_offset in iter_top_level_boxes(data):
        end = data_offset - header_size + total_size
        yield box_type, data[data_offset:end]


def find_nested_box(data: bytes, *path: bytes) -> bytes | None:
    """Walk a box hierarchy: find_nested_box(data, b"trak", b"mdia") etc."""
    current = data
    for box_name in path:
        found = find_box(current, box_name)
        if found is None:
            return None
        current = found
    return current


# =============================================================================
# Init segment (moov) parsers
# =============================================================================


def parse_mdhd(data: bytes) -> tuple[int, int, int]:
    """
    Parse Media Header box (mdhd) for timescale, duration and language.

    Returns:
        (timescale, duration, packed_language) in media timescale units.
    """
    if len(data) < 4:
        return 0, 0, 0
    version = data[0]
    if version == 1:
        # 64-bit: skip version(1)+flags(3)+creation(8)+modification(8)
        if len(data) < 34:
            return 0, 0, 0
        timescale = struct.unpack_from(">I", data, 20)[0]
        duration = struct.unpack_from(">Q", data, 24)[0]
        language = struct.unpack_from(">H", data, 32)[0]
    else:
        # 32-bit: skip version(1)+flags(3)+creation(4)+modification(4)
        if len(data) < 22:
            return 0, 0, 0
        timescale = struct.unpack_from(">I", data, 12)[0]
        duration = struct.unpack_from(">I", data, 16)[0]
        language = struct.unpack_from(">H", data, 20)[0]
    return timescale, duration, language


def parse_mvhd(data: bytes) -> tuple[int, int]:
    """Parse Movie Header box (mvhd) for timescale and duration."""
    if len(data) < 20:
        return 0, 0
    if data[0] == 1:
        if len(data) < 32:
            return 0, 0
        return struct.unpack_from(">I", data, 20)[0], struct.unpack_from(">Q", data, 24)[0]
    return struct.unpack_from(">I", data, 12)[0], struct.unpack_from(">I", data, 16)[0]


def parse_tkhd(data: bytes) -> tuple[int, int, int]:
    """
    Parse Track Header box (tkhd).

    Returns:
        (track_id, width, height) with width/height as raw 16.16 fixed point.
    """
    if len(data) < 4:
        return 0, 0, 0
    version = data[0]
    id_pos = 20 if version == 1 else 12
    # width/height are the last 8 bytes of the box
    if len(data) < id_pos + 4 or len(data) < 8:
        return 0, 0, 0
    track_id = struct.unpack_from(">I", data, id_pos)[0]
    width, height = struct.unpack_from(">II", data, len(data) - 8)
    return track_id, width, height


def parse_hdlr(data: bytes) -> bytes:
    """Return the handler type (b"vide", b"soun", ...) of an hdlr body."""
    # hdlr: version(1)+flags(3)+pre_defined(4)+handler_type(4)
    if len(data) < 12:
        return b""
    return data[8:12]


def parse_stsd_entries(data: bytes) -> list[tuple[bytes, bytes]]:
    """
    Parse Sample Description box (stsd) into its sample entries.

    Returns:
        List of (entry_type, entry_body) such as (b"avc1", ...), (b"mp4a", ...).
    """
    if len(data) < 8:
        return []
    entry_count = struct.unpack_from(">I", data, 4)[0]
    entries = []
    for box_type, body in iter_boxes(data[8:]):
        entries.append((box_type, body))
        if len(entries) == entry_count:
            break
    return entries


def parse_stsd_codec(data: bytes) -> str:
    """
    Parse Sample Description box (stsd) to extract the codec FourCC.

    Returns the codec name as a string (e.g. "avc1", "hvc1", "mp4a").
    """
    entries = parse_stsd_entries(data)
    if not entries:
        return ""
    try:
        return entries[0][0].decode("ascii").strip()
    except (UnicodeDecodeError, ValueError):
        return ""


def _sample_entry_child_offset(handler: bytes) -> int:
    # Fixed fields before child boxes: 78 bytes for visual, 28 for audio, 8 otherwise
    if handler == b"vide":
        return 78
    if handler == b"soun":
        return 28
    return 8


def is_protected_sample_entry(entry_type: bytes, entry_body: bytes, handler: bytes) -> bool:
    """Check for an encrypted sample entry (encv/enca) or a sinf protection box."""
    if entry_type in ENCRYPTED_SAMPLE_ENTRIES:
        return True
    children = entry_body[_sample_entry_child_offset(handler) :]
    return any(box_type == b"sinf" for box_type, _ in iter_boxes(children))


def parse_trex(data: bytes) -> tuple[int, int, int, int, int]:
    """
    Parse Track Extends box (trex).

    Returns:
        (track_id, default_sample_description_index, default_sample_duration,
         default_sample_size, default_sample_flags)
    """
    if len(data) < 24:
        return 0, 1, 0, 0, 0
    return struct.unpack_from(">IIIII", data, 4)


@dataclass
class TrackInfo:
    """Description of the one track a cached variant carries, from its init segment."""

    track_id: int
    handler: bytes  # b"vide" or b"soun"
    timescale: int
    language: int = 0x55C4  # packed ISO-639-2/T, 'und'
    width: int = 0  # 16.16 fixed point
    height: int = 0  # 16.16 fixed point
    stsd: bytes = b""  # Complete stsd box, copied verbatim into the output
    sample_entry: str = ""  # FourCC of the first sample entry
    protected: bool = False
    default_sample_description_index: int = 1
    default_sample_duration: int = 0
    default_sample_size: int = 0
    default_sample_flags: int = 0

    @property
    def is_video(self) -> bool:
        return self.handler == b"vide"


def parse_init_segment(moov_body: bytes, handler: bytes) -> TrackInfo | None:
    """
    Extract the first track with the given handler type from a moov body.

    Returns None when the moov holds no such track.
    """
    trex_defaults = {}
    mvex = find_box(moov_body, b"mvex")
    if mvex is not None:
        for box_type, body in iter_boxes(mvex):
            if box_type == b"trex":
                values = parse_trex(body)
                trex_defaults[values[0]] = values[1:]

    for box_type, trak_body in iter_boxes(moov_body):
        if box_type != b"trak":
            continue
        hdlr = find_nested_box(trak_body, b"mdia", b"hdlr")
        if hdlr is None or parse_hdlr(hdlr) != handler:
            continue

        tkhd = find_box(trak_body, b"tkhd")
        mdhd = find_nested_box(trak_body, b"mdia", b"mdhd")
        stbl = find_nested_box(trak_body, b"mdia", b"minf", b"stbl")
        if tkhd is None or mdhd is None or stbl is None:
            raise BoxError("track is missing tkhd, mdhd or stbl")

        stsd = find_box_raw(stbl, b"stsd")
        if stsd is None:
            raise BoxError("track has no stsd box")

        track_id, width, height = parse_tkhd(tkhd)
        timescale, _, language = parse_mdhd(mdhd)
        if timescale == 0:
            raise BoxError("track timescale is zero")

        entries = parse_stsd_entries(stsd[8:])
        if not entries:
            raise BoxError("stsd has no sample entries")
        protected = any(is_protected_sample_entry(t, body, handler) for t, body in entries)

        info = TrackInfo(
            track_id=track_id,
            handler=handler,
            timescale=timescale,
            language=language,
            width=width,
            height=height,
            stsd=stsd,
            sample_entry=entries[0][0].decode("ascii", errors="replace"),
            protected=protected,
        )
        if track_id in trex_defaults:
            (
                info.default_sample_description_index,
                info.default_sample_duration,
                info.default_sample_size,
                info.default_sample_flags,
            ) = trex_defaults[track_id]
        return info

    return None


# =============================================================================
# Movie fragment parsers
# =============================================================================

# tfhd flags
TFHD_BASE_DATA_OFFSET = 0x000001
TFHD_SAMPLE_DESCRIPTION_INDEX = 0x000002
TFHD_DEFAULT_DURATION = 0x000008
TFHD_DEFAULT_SIZE = 0x000010
TFHD_DEFAULT_FLAGS = 0x000020
TFHD_DEFAULT_BASE_IS_MOOF = 0x020000

# trun flags
TRUN_DATA_OFFSET = 0x000001
TRUN_FIRST_SAMPLE_FLAGS = 0x000004
TRUN_SAMPLE_DURATION = 0x000100
TRUN_SAMPLE_SIZE = 0x000200
TRUN_SAMPLE_FLAGS = 0x000400
TRUN_SAMPLE_CTS = 0x000800

# sample_is_non_sync_sample bit of the sample flags word
SAMPLE_FLAG_NON_SYNC = 0x00010000


@dataclass
class TrackFragmentHeader:
    track_id: int
    base_data_offset: int | None = None
    sample_description_index: int | None = None
    default_sample_duration: int | None = None
    default_sample_size: int | None = None
    default_sample_flags: int | None = None
    default_base_is_moof: bool = False


@dataclass
class TrackRun:
    data_offset: int | None
    # (size, duration, flags, composition_offset) per sample
    samples: list[tuple[int, int, int, int]] = field(default_factory=list)

    @property
    def byte_size(self) -> int:
        return sum(s[0] for s in self.samples)


def parse_tfhd(data: bytes) -> TrackFragmentHeader:
    """Parse tfhd (Track Fragment Header) box."""
    if len(data) < 8:
        raise BoxError("tfhd too short")

    flags = struct.unpack_from(">I", data, 0)[0] & 0xFFFFFF
    header = TrackFragmentHeader(track_id=struct.unpack_from(">I", data, 4)[0])
    header.default_base_is_moof = bool(flags & TFHD_DEFAULT_BASE_IS_MOOF)

    offset = 8
    fields = (
        (TFHD_BASE_DATA_OFFSET, "base_data_offset", ">Q", 8),
        (TFHD_SAMPLE_DESCRIPTION_INDEX, "sample_description_index", ">I", 4),
        (TFHD_DEFAULT_DURATION, "default_sample_duration", ">I", 4),
        (TFHD_DEFAULT_SIZE, "default_sample_size", ">I", 4),
        (TFHD_DEFAULT_FLAGS, "default_sample_flags", ">I", 4),
    )
    for flag, name, fmt, size in fields:
        if flags & flag:
            if offset + size > len(data):
                raise BoxError("tfhd truncated")
            setattr(header, name, struct.unpack_from(fmt, data, offset)[0])
            offset += size
    return header


def parse_tfdt(data: bytes) -> int:
    """Parse tfdt (Track Fragment Decode Time) box."""
    if len(data) < 8:
        raise BoxError("tfdt too short")
    if data[0] == 1:
        if len(data) < 12:
            raise BoxError("tfdt truncated")
        return struct.unpack_from(">Q", data, 4)[0]
    return struct.unpack_from(">I", data, 4)[0]


def parse_trun(
    data: bytes, default_duration: int, default_size: int, default_flags: int, payload_size: int | None = None
) -> TrackRun:
    """
    Parse trun (Track Fragment Run) box, filling absent fields from the defaults.

    A run that takes its sizes or durations from the defaults must get
    non-zero values there. With ``payload_size`` given, a run whose default
    sizes add up to more than the payload is rejected before any sample is
    materialised.
    """
    if len(data) < 8:
        raise BoxError("trun too short")

    version_and_flags = struct.unpack_from(">I", data, 0)[0]
    trun_version = (version_and_flags >> 24) & 0xFF
    flags = version_and_flags & 0xFFFFFF
    sample_count = struct.unpack_from(">I", data, 4)[0]

    per_sample = 4 * sum(
        1 for bit in (TRUN_SAMPLE_DURATION, TRUN_SAMPLE_SIZE, TRUN_SAMPLE_FLAGS, TRUN_SAMPLE_CTS) if flags & bit
    )
    offset = 8
    data_offset = None
    first_sample_flags = None

    if flags & TRUN_DATA_OFFSET:
        if offset + 4 > len(data):
            raise BoxError("trun truncated")
        data_offset = struct.unpack_from(">i", data, offset)[0]
        offset += 4

    if flags & TRUN_FIRST_SAMPLE_FLAGS:
        if offset + 4 > len(data):
            raise BoxError("trun truncated")
        first_sample_flags = struct.unpack_from(">I", data, offset)[0]
        offset += 4

    if offset + sample_count * per_sample > len(data):
        raise BoxError(f"trun declares {sample_count} samples but is only {len(data)} bytes")
    if sample_count and not flags & TRUN_SAMPLE_SIZE:
        if not default_size:
            raise BoxError(f"trun of {sample_count} samples has no sample sizes")
        if payload_size is not None and sample_count * default_size > payload_size:
            raise BoxError(
                f"trun declares {sample_count} samples of {default_size} bytes in a {payload_size}-byte fragment"
            )
    if sample_count and not flags & TRUN_SAMPLE_DURATION and not default_duration:
        raise BoxError(f"trun of {sample_count} samples has no sample durations")

    run = TrackRun(data_offset=data_offset)
    for i in range(sample_count):
        sample_duration = default_duration
        sample_size = default_size
        sample_flags = first_sample_flags if i == 0 and first_sample_flags is not None else default_flags
        cts_offset = 0

        if flags & TRUN_SAMPLE_DURATION:
            sample_duration = struct.unpack_from(">I", data, offset)[0]
            offset += 4
        if flags & TRUN_SAMPLE_SIZE:
            sample_size = struct.unpack_from(">I", data, offset)[0]
            offset += 4
        if flags & TRUN_SAMPLE_FLAGS:
            sample_flags = struct.unpack_from(">I", data, offset)[0]
            offset += 4
        if flags & TRUN_SAMPLE_CTS:
            # Per ISO 14496-12: unsigned (uint32) in version 0, signed (int32) in version 1
            fmt = ">I" if trun_version == 0 else ">i"
            cts_offset = struct.unpack_from(fmt, data, offset)[0]
            offset += 4

        run.samples.append((sample_size, sample_duration, sample_flags, cts_offset))

    return run


# =============================================================================
# Sample Table Parsers (inverse of mp4_muxer.py builders)
# =============================================================================


def _parse_table(data: bytes, fmt: str) -> list:
    if len(data) < 8:
        return []
    entry_count = struct.unpack_from(">I", data, 4)[0]
    entry_size = struct.calcsize(fmt)
    if len(data) < 8 + entry_count * entry_size:
        return []
    return [struct.unpack_from(fmt, data, 8 + i * entry_size) for i in range(entry_count)]


def parse_stco(data: bytes) -> list[int]:
    """Parse Chunk Offset box (stco) - 32-bit offsets."""
    return [entry[0] for entry in _parse_table(data, ">I")]


def parse_co64(data: bytes) -> list[int]:
    """Parse Chunk Offset box (co64) - 64-bit offsets."""
    return [entry[0] for entry in _parse_table(data, ">Q")]


def parse_stss(data: bytes) -> list[int]:
    """Parse Sync Sample box (stss) - keyframe indices (1-based)."""
    return [entry[0] for entry in _parse_table(data, ">I")]


def parse_stts(data: bytes) -> list[tuple[int, int]]:
    """Parse Time-to-Sample box (stts) - run-length encoded (sample_count, sample_delta)."""
    return _parse_table(data, ">II")


def parse_ctts(data: bytes) -> list[tuple[int, int]]:
    """Parse Composition Offset box (ctts) - run-length encoded (sample_count, offset)."""
    version = data[0] if data else 0
    return _parse_table(data, ">Ii" if version == 1 else ">II")


def parse_stsc(data: bytes) -> list[tuple[int, int, int]]:
    """
    Parse Sample-to-Chunk box (stsc).

    Returns:
        List of (first_chunk, samples_per_chunk, sample_desc_index) entries.
        first_chunk is 1-based.
    """
    return _parse_table(data, ">III")


def parse_stsz(data: bytes) -> tuple[int, list[int]]:
    """
    Parse Sample Size box (stsz).

    Returns:
        (uniform_size, sizes_list).
        If uniform_size > 0, all samples have that size and sizes_list is empty.
    """
    if len(data) < 12:
        return 0, []
    sample_size, sample_count = struct.unpack_from(">II", data, 4)
    if sample_size > 0:
        return sample_size, []
    if len(data) < 12 + sample_count * 4:
        return 0, []
    return 0, [struct.unpack_from(">I", data, 12 + i * 4)[0] for i in range(sample_count)]


# =============================================================================
# MP4 Index (probe of a finished file)
# =============================================================================


@dataclass
class TrackSummary:
    handler: bytes
    codec: str
    timescale: int
    duration: int
    sample_count: int
    chunk_offsets: list[int] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return self.duration / self.timescale if self.timescale else 0.0


@dataclass
class MP4Index:
    """
    Seek index read back from a moov-first MP4.

    Provides keyframe-indexed cue points for time-based seeking along with
    the layout facts a player needs before it can seek: where moov and
    mdat sit and how long each track runs.
    """

    duration_ms: float = 0.0
    timescale: int = 0
    cue_points: list[tuple[float, int]] = field(default_factory=list)  # [(time_ms, byte_offset), ...]
    moov_offset: int = 0
    moov_size: int = 0
    mdat_offset: int = 0
    mdat_size: int = 0
    tracks: list[TrackSummary] = field(default_factory=list)

    @property
    def video_codec(self) -> str:
        return next((t.codec for t in self.tracks if t.handler == b"vide"), "")

    @property
    def audio_codec(self) -> str:
        return next((t.codec for t in self.tracks if t.handler == b"soun"), "")

    @property
    def is_faststart(self) -> bool:
        return 0 < self.moov_offset < self.mdat_offset

    def byte_offset_for_time(self, time_ms: float) -> tuple[int, float]:
        """
        Find the byte offset for the nearest keyframe at or before time_ms.

        Returns:
            (absolute_byte_offset, actual_keyframe_time_ms)
        """
        if not self.cue_points:
            return 0, 0.0

        times = [cp[0] for cp in self.cue_points]
        idx = bisect.bisect_right(times, time_ms) - 1
        if idx < 0:
            idx = 0

        cue_time_ms, byte_offset = self.cue_points[idx]
        return byte_offset, cue_time_ms


def _expand_chunks(stsc_entries: list[tuple[int, int, int]], total_chunks: int) -> list[int]:
    """Expand stsc into samples-per-chunk for each (0-based) chunk."""
    counts = [1] * total_chunks
    for i, (first_chunk, spc, _sdi) in enumerate(stsc_entries):
        start = first_chunk - 1
        end = stsc_entries[i + 1][0] - 1 if i + 1 < len(stsc_entries) else total_chunks
        for c in range(start, min(end, total_chunks)):
            counts[c] = spc
    return counts


def _summarize_trak(trak_body: bytes) -> tuple[TrackSummary, list[tuple[float, int]]]:
    handler = parse_hdlr(find_nested_box(trak_body, b"mdia", b"hdlr") or b"")
    timescale, duration, _ = parse_mdhd(find_nested_box(trak_body, b"mdia", b"mdhd") or b"")
    stbl = find_nested_box(trak_body, b"mdia", b"minf", b"stbl") or b""

    co64 = find_box(stbl, b"co64")
    stco = find_box(stbl, b"stco")
    chunk_offsets = parse_co64(co64) if co64 else parse_stco(stco or b"")
    uniform_size, sizes = parse_stsz(find_box(stbl, b"stsz") or b"")
    stss = find_box(stbl, b"stss")
    keyframes = set(parse_stss(stss)) if stss else None
    durations = [delta for count, delta in parse_stts(find_box(stbl, b"stts") or b"") for _ in range(count)]
    spc_list = _expand_chunks(parse_stsc(find_box(stbl, b"stsc") or b""), len(chunk_offsets))

    sample_count = len(durations)
    summary = TrackSummary(
        handler=handler,
        codec=parse_stsd_codec(find_box(stbl, b"stsd") or b""),
        timescale=timescale,
        duration=duration,
        sample_count=sample_count,
        chunk_offsets=chunk_offsets,
    )

    cue_points: list[tuple[float, int]] = []
    if handler != b"vide" or not timescale:
        return summary, cue_points

    sample = 0
    current_time = 0
    for chunk_offset, spc in zip(chunk_offsets, spc_list):
        byte_pos = chunk_offset
        for _ in range(spc):
            if sample >= sample_count:
                break
            if keyframes is None or (sample + 1) in keyframes:
                cue_points.append((current_time / timescale * 1000.0, byte_pos))
            byte_pos += uniform_size or (sizes[sample] if sample < len(sizes) else 0)
            current_time += durations[sample]
            sample += 1
    return summary, cue_points


def probe_mp4(path: Path) -> MP4Index:
    """
    Read the moov of a finished MP4 and build its seek index.

    Only the top-level headers, ftyp and moov are read; sample data is
    skipped over with seeks.
    """
    index = MP4Index()
    with open(path, "rb") as f:
        file_size = f.seek(0, 2)
        offset = 0
        while offset + 8 <= file_size:
            f.seek(offset)
            header = f.read(16)
            result = read_box_header(header, 0)
            if result is None:
                break
            box_type, header_size, total_size = result
            if struct.unpack_from(">I", header, 0)[0] == 0:
                total_size = file_size - offset
            if total_size < header_size:
                raise BoxError(f"invalid box size {total_size} at offset {offset}")
            if box_type == b"moov":
                index.moov_offset, index.moov_size = offset, total_size
                f.seek(offset + header_size)
                moov_body = f.read(total_size - header_size)
            elif box_type == b"mdat":
                index.mdat_offset, index.mdat_size = offset, total_size
            offset += total_size

    if not index.moov_size:
        logger.warning("[mp4_parser] No moov found in %s", path)
        return index

    for box_type, body in iter_boxes(moov_body):
        if box_type == b"mvhd":
            index.timescale, duration = parse_mvhd(body)
            index.duration_ms = duration / index.timescale * 1000.0 if index.timescale else 0.0
        elif box_type == b"trak":
            summary, cue_points = _summarize_trak(body)
            index.tracks.append(summary)
            if cue_points and not index.cue_points:
                index.cue_points = cue_points

    logger.debug(
        "[mp4_parser] Probed %s: %d tracks, %d cue points, duration=%.1fs",
        path,
        len(index.tracks),
        len(index.cue_points),
        index.duration_ms / 1000.0,
    )
    return index
