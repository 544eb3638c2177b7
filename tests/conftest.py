"""
Pytest configuration and synthetic cache builders.

Caches are built from real fragmented-MP4 boxes (made with the package's own
box builders) laid out the way the client writes them: one directory per
title holding a ``.videoInfo`` document, cover art and one directory per
stream variant with ``init.m4s`` and ``0.m4s``, ``1.m4s``, ... fragments,
each prefixed with the client's ``000000000`` padding.
"""

import hashlib
import json
import struct
from pathlib import Path

import pytest

from cachemux.remuxer.mp4_muxer import (
    TrackSamples,
    build_box,
    build_dinf,
    build_ftyp,
    build_full_box,
    build_mdhd,
    build_mvhd,
    build_stbl,
    build_tkhd,
    build_hdlr,
    build_smhd,
    build_vmhd,
)

PADDING = b"0" * 9

VIDEO_TIMESCALE = 1000
VIDEO_SAMPLE_DURATION = 40  # 25 fps
VIDEO_SAMPLES_PER_FRAGMENT = 25

AUDIO_TIMESCALE = 48000
AUDIO_SAMPLE_DURATION = 960
AUDIO_SAMPLES_PER_FRAGMENT = 50

SYNC_FLAGS = 0x02000000
NON_SYNC_FLAGS = 0x01010000


def sample_bytes(seed: int, fragment: int, sample: int, size: int) -> bytes:
    return bytes([(seed + fragment * 31 + sample) % 256]) * size


def video_sample_size(sample: int) -> int:
    return 120 + sample


def audio_sample_size(sample: int) -> int:
    return 40 + sample % 3


# -----------------------------------------------------------------------------
# Init segment
# -----------------------------------------------------------------------------


def build_video_entry(entry_type: bytes = b"avc1", protected: bool = False) -> bytes:
    body = bytearray()
    body.extend(b"\x00" * 6 + struct.pack(">H", 1))  # reserved, data_reference_index
    body.extend(b"\x00" * 16)  # pre_defined, reserved
    body.extend(struct.pack(">HH", 1280, 720))
    body.extend(struct.pack(">II", 0x00480000, 0x00480000))  # 72 dpi
    body.extend(b"\x00" * 4)  # reserved
    body.extend(struct.pack(">H", 1))  # frame_count
    body.extend(b"\x00" * 32)  # compressorname
    body.extend(struct.pack(">Hh", 0x0018, -1))  # depth, pre_defined
    body.extend(build_box(b"avcC", b"\x01\x64\x00\x28\xff\xe1\x00\x00\x01\x00\x00"))
    if protected:
        body.extend(build_box(b"sinf", build_box(b"frma", entry_type)))
        entry_type = b"encv"
    return build_box(entry_type, bytes(body))


def build_audio_entry(entry_type: bytes = b"mp4a", protected: bool = False) -> bytes:
    body = bytearray()
    body.extend(b"\x00" * 6 + struct.pack(">H", 1))
    body.extend(b"\x00" * 8)  # reserved
    body.extend(struct.pack(">HH", 2, 16))  # channelcount, samplesize
    body.extend(b"\x00" * 4)  # pre_defined, reserved
    body.extend(struct.pack(">I", AUDIO_TIMESCALE << 16))
    body.extend(build_full_box(b"esds", 0, 0, b"\x03\x19\x00\x01\x00\x04\x11\x40\x15"))
    if protected:
        body.extend(build_box(b"sinf", build_box(b"frma", entry_type)))
        entry_type = b"enca"
    return build_box(entry_type, bytes(body))


def build_init_segment(kind: str, track_id: int = 1, entry_type: bytes | None = None, protected: bool = False) -> bytes:
    """ftyp + moov describing a single, still empty, fragmented track."""
    is_audio = kind == "audio"
    if is_audio:
        entry = build_audio_entry(entry_type or b"mp4a", protected)
        timescale, handler = AUDIO_TIMESCALE, b"soun"
        tkhd = build_tkhd(track_id, 0, is_audio=True)
        media_header = build_smhd()
    else:
        entry = build_video_entry(entry_type or b"avc1", protected)
        timescale, handler = VIDEO_TIMESCALE, b"vide"
        tkhd = build_tkhd(track_id, 0, width=1280 << 16, height=720 << 16)
        media_header = build_vmhd()

    stsd = build_full_box(b"stsd", 0, 0, struct.pack(">I", 1) + entry)
    minf = build_box(b"minf", media_header + build_dinf() + build_stbl(TrackSamples(), stsd))
    mdia = build_box(b"mdia", build_mdhd(timescale, 0) + build_hdlr(handler, "handler") + minf)
    trak = build_box(b"trak", tkhd + mdia)
    trex = build_full_box(b"trex", 0, 0, struct.pack(">IIIII", track_id, 1, 0, 0, 0))
    moov = build_box(b"moov", build_mvhd(1000, 0, track_id + 1) + trak + build_box(b"mvex", trex))
    return build_ftyp("mp4") + moov


# -----------------------------------------------------------------------------
# Media segments
# -----------------------------------------------------------------------------


def build_media_segment(
    track_id: int, sequence: int, decode_time: int, samples: list[tuple[int, int, int, int]], payload: bytes
) -> bytes:
    """moof + mdat with one trun whose data_offset points at the mdat payload."""

    def moof_with_offset(data_offset: int) -> bytes:
        mfhd = build_full_box(b"mfhd", 0, 0, struct.pack(">I", sequence + 1))
        tfhd = build_full_box(b"tfhd", 0, 0x020000, struct.pack(">I", track_id))
        tfdt = build_full_box(b"tfdt", 1, 0, struct.pack(">Q", decode_time))
        trun_payload = bytearray(struct.pack(">Ii", len(samples), data_offset))
        for size, duration, flags, cts in samples:
            trun_payload.extend(struct.pack(">IIII", duration, size, flags, cts))
        trun = build_full_box(b"trun", 0, 0x000F01, bytes(trun_payload))
        return build_box(b"moof", mfhd + build_box(b"traf", tfhd + tfdt + trun))

    moof_size = len(moof_with_offset(0))
    return moof_with_offset(moof_size + 8) + build_box(b"mdat", payload)


def build_fragment(kind: str, index: int, track_id: int = 1) -> bytes:
    if kind == "video":
        count, duration = VIDEO_SAMPLES_PER_FRAGMENT, VIDEO_SAMPLE_DURATION
        seed = 1
    else:
        count, duration = AUDIO_SAMPLES_PER_FRAGMENT, AUDIO_SAMPLE_DURATION
        seed = 101
    samples = []
    payload = bytearray()
    for i in range(count):
        if kind == "video":
            size = video_sample_size(i)
            flags = SYNC_FLAGS if i == 0 else NON_SYNC_FLAGS
            cts = 80 if i % 2 else 0
        else:
            size, flags, cts = audio_sample_size(i), 0, 0
        samples.append((size, duration, flags, cts))
        payload.extend(sample_bytes(seed, index, i, size))
    return build_media_segment(track_id, index, index * count * duration, samples, bytes(payload))


# -----------------------------------------------------------------------------
# Cache layout
# -----------------------------------------------------------------------------


def write_stream(
    title_dir: Path,
    kind: str,
    path: str,
    quality,
    codec: str,
    *,
    fragments: int = 3,
    separate_init: bool = True,
    padded: bool = True,
    entry_type: bytes | None = None,
    protected_entry: bool = False,
    track_id: int = 1,
) -> dict:
    """Write one variant directory and return its metadata record."""
    variant_dir = title_dir / path
    variant_dir.mkdir(parents=True)
    prefix = PADDING if padded else b""
    init = build_init_segment(kind, track_id, entry_type, protected_entry)
    if separate_init:
        (variant_dir / "init.m4s").write_bytes(prefix + init)

    records = []
    for index in range(fragments):
        payload = build_fragment(kind, index, track_id)
        if index == 0 and not separate_init:
            payload = init + payload
        (variant_dir / f"{index}.m4s").write_bytes(prefix + payload)
        records.append(
            {
                "index": index,
                "size": len(payload),
                "checksum": "sha256:" + hashlib.sha256(payload).hexdigest(),
                "duration": 1.0,
            }
        )

    return {
        "kind": kind,
        "quality": quality,
        "path": path,
        "codec": codec,
        "fragmentCount": fragments,
        "fragments": records,
    }


def write_metadata(title_dir: Path, title_id: str, streams: list[dict], **info) -> Path:
    document = {
        "uname": "uploader",
        "title": "A title",
        "groupTitle": "A title",
        "itemId": int(title_id) if title_id.isdigit() else None,
        "coverPath": "cover.jpg",
        "streams": streams,
    }
    document.update(info)
    metadata_path = title_dir / ".videoInfo"
    metadata_path.write_text(json.dumps(document), encoding="utf-8")
    return metadata_path


def write_title(cache_root: Path, title_id: str = "12345", **stream_options) -> Path:
    """A title with one 720/H264 video and one 'high'/AAC audio variant of 3 fragments each."""
    title_dir = cache_root / title_id
    title_dir.mkdir(parents=True)
    streams = [
        write_stream(title_dir, "video", "80", 720, "H264", **stream_options),
        write_stream(title_dir, "audio", "30280", "high", "AAC", **stream_options),
    ]
    write_metadata(title_dir, title_id, streams)
    (title_dir / "cover.jpg").write_bytes(b"\xff\xd8\xff\xe0cover")
    return title_dir


@pytest.fixture
def cache_root(tmp_path):
    root = tmp_path / "cache"
    root.mkdir()
    return root


@pytest.fixture
def destination(tmp_path):
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def cached_title(cache_root):
    """The standard two-stream title "12345" below ``cache_root``."""
    return write_title(cache_root)
