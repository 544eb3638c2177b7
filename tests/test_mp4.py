import struct

import pytest

from cachemux.remuxer.codec_utils import check_mux_compatibility
from cachemux.remuxer.mp4_muxer import (
    MP4Builder,
    SampleEntry,
    TrackSamples,
    build_ctts,
    build_full_box,
    build_mdat_header,
    build_stsc,
    build_stss,
    build_stts,
)
from cachemux.remuxer.mp4_parser import (
    BoxError,
    find_box,
    iter_top_level_boxes,
    parse_ctts,
    parse_init_segment,
    parse_stsc,
    parse_stts,
    parse_tfhd,
    parse_trun,
)
from conftest import build_init_segment


def _trun_body(flags, samples, data_offset=None, first_flags=None, version=0):
    body = struct.pack(">II", (version << 24) | flags, len(samples))
    if data_offset is not None:
        body += struct.pack(">i", data_offset)
    if first_flags is not None:
        body += struct.pack(">I", first_flags)
    for fields in samples:
        for i, value in enumerate(fields):
            signed = version and i == len(fields) - 1
            body += struct.pack(">i" if signed else ">I", value)
    return body


def test_trun_fills_missing_fields_from_defaults():
    body = _trun_body(0x000201 | 0x000004, [(100,), (50,)], data_offset=120, first_flags=0x02000000)

    run = parse_trun(body, default_duration=1024, default_size=0, default_flags=0x01010000)

    assert run.data_offset == 120
    assert run.samples == [(100, 1024, 0x02000000, 0), (50, 1024, 0x01010000, 0)]
    assert run.byte_size == 150


def test_trun_version_one_has_signed_composition_offsets():
    body = _trun_body(0x000A00, [(10, -20), (10, 40)], version=1)

    run = parse_trun(body, 40, 0, 0)

    assert [s[3] for s in run.samples] == [-20, 40]


def test_truncated_trun():
    body = _trun_body(0x000300, [(40, 10)])[:-2]

    with pytest.raises(BoxError):
        parse_trun(body, 0, 0, 0)


def test_tfhd_optional_fields():
    flags = 0x000001 | 0x000008 | 0x000020
    body = struct.pack(">II", flags, 7) + struct.pack(">QII", 4096, 1024, 0x01010000)

    header = parse_tfhd(body)

    assert header.track_id == 7
    assert header.base_data_offset == 4096
    assert header.default_sample_duration == 1024
    assert header.default_sample_size is None
    assert header.default_sample_flags == 0x01010000
    assert not header.default_base_is_moof


def test_strict_box_iteration_rejects_overlong_box():
    data = struct.pack(">I4s", 64, b"moof") + b"\x00" * 8

    assert list(iter_top_level_boxes(data)) == []
    with pytest.raises(BoxError):
        list(iter_top_level_boxes(data, strict=True))


def test_parse_init_segment_video_track():
    moov = find_box(build_init_segment("video", track_id=3), b"moov")

    info = parse_init_segment(moov, b"vide")

    assert info.track_id == 3
    assert info.timescale == 1000
    assert info.sample_entry == "avc1"
    assert info.width == 1280 << 16 and info.height == 720 << 16
    assert info.stsd.startswith(struct.pack(">I", len(info.stsd)) + b"stsd")
    assert not info.protected
    assert parse_init_segment(moov, b"soun") is None


def test_parse_init_segment_detects_protection():
    moov = find_box(build_init_segment("audio", protected=True), b"moov")

    info = parse_init_segment(moov, b"soun")

    assert info.protected
    assert info.sample_entry == "enca"


def test_stts_is_run_length_encoded():
    samples = [SampleEntry(1, 40, True)] * 3 + [SampleEntry(1, 41, False)]

    assert parse_stts(find_box(build_stts(samples), b"stts")) == [(3, 40), (1, 41)]


def test_stss_omitted_when_every_sample_is_sync():
    assert build_stss([SampleEntry(1, 1, True)] * 4) is None
    assert build_stss([SampleEntry(1, 1, True), SampleEntry(1, 1, False)]) is not None


def test_ctts_uses_version_one_for_negative_offsets():
    samples = [SampleEntry(1, 1, True, -40), SampleEntry(1, 1, False, 80)]

    box = build_ctts(samples)

    assert box[8] == 1
    assert parse_ctts(box[8:]) == [(1, -40), (1, 80)]


def test_stsc_collapses_identical_chunks():
    box = build_stsc([(25, 1), (25, 1), (50, 1), (50, 1), (50, 2)])

    assert parse_stsc(box[8:]) == [(1, 25, 1), (3, 50, 1), (5, 50, 2)]


def test_mdat_header_switches_to_64_bit():
    assert build_mdat_header(100) == struct.pack(">I", 108) + b"mdat"
    large = build_mdat_header(0x100000000)
    assert large[:8] == struct.pack(">I", 1) + b"mdat"
    assert struct.unpack(">Q", large[8:])[0] == 0x100000000 + 16


def test_builder_rejects_unplaced_chunks():
    moov = find_box(build_init_segment("video"), b"moov")
    info = parse_init_segment(moov, b"vide")
    samples = TrackSamples()
    samples.add(SampleEntry(10, 40, True))
    samples.close_chunk(1)

    builder = MP4Builder()
    builder.add_track(info, samples)

    with pytest.raises(ValueError):
        builder.finalize()


def test_builder_places_moov_before_mdat():
    moov = find_box(build_init_segment("video"), b"moov")
    info = parse_init_segment(moov, b"vide")
    samples = TrackSamples()
    for _ in range(2):
        samples.add(SampleEntry(10, 40, True))
    samples.close_chunk(2)

    builder = MP4Builder()
    track_id = builder.add_track(info, samples)
    builder.add_chunk(track_id, 20)
    header, mdat_header = builder.finalize()

    boxes = [box_type for box_type, *_ in iter_top_level_boxes(header)]
    assert boxes == [b"ftyp", b"moov"]
    assert samples.chunk_offsets == [len(header) + len(mdat_header)]


def test_full_box_header_packs_version_and_flags():
    assert build_full_box(b"test", 1, 0x000203, b"")[8:12] == b"\x01\x00\x02\x03"


def test_mux_compatibility():
    assert check_mux_compatibility("mp4", "av01", "Opus").compatible
    decision = check_mux_compatibility("mov", "av01", "mp4a")
    assert not decision.compatible
    assert "av01" in decision.reason
    with pytest.raises(ValueError):
        check_mux_compatibility("mkv", "avc1", "mp4a")


def test_trun_sizes_from_defaults_must_fit_the_payload():
    body = _trun_body(0x000001, [()] * 3, data_offset=0)

    assert parse_trun(body, 40, 8, 0, payload_size=24).byte_size == 24
    with pytest.raises(BoxError, match="no sample sizes"):
        parse_trun(body, 40, 0, 0)
    with pytest.raises(BoxError, match="3 samples of 8 bytes"):
        parse_trun(body, 40, 8, 0, payload_size=23)
    with pytest.raises(BoxError, match="no sample durations"):
        parse_trun(body, 0, 8, 0)
