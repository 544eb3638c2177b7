import logging
import struct

import pytest

from cachemux.assembler import assemble_stream
from cachemux.errors import FragmentCorruptError
from cachemux.models import StreamVariant
from cachemux.remuxer.fragment_index import index_stream
from cachemux.remuxer.mp4_muxer import build_box, build_full_box
from cachemux.remuxer.remux_pipeline import interleave_chunks
from cachemux.schemas import FragmentRecord
from conftest import (
    PADDING,
    VIDEO_SAMPLE_DURATION,
    VIDEO_SAMPLES_PER_FRAGMENT,
    build_fragment,
    build_init_segment,
    build_media_segment,
)


def _variant(fragment_dir, kind="video", fragments=None):
    return StreamVariant(
        kind=kind,
        quality=80,
        codec="H264" if kind == "video" else "AAC",
        fragment_dir=fragment_dir,
        title_id="12345",
        declaration_order=0,
        fragments=fragments or {},
    )


def _write_video(directory, segments):
    directory.mkdir()
    (directory / "init.m4s").write_bytes(PADDING + build_init_segment("video"))
    for index, segment in enumerate(segments):
        (directory / f"{index}.m4s").write_bytes(PADDING + segment)


def test_runs_point_at_sample_bytes_on_disk(tmp_path):
    _write_video(tmp_path / "80", [build_fragment("video", 0), build_fragment("video", 1)])

    index = index_stream(assemble_stream(_variant(tmp_path / "80")))

    assert len(index.samples.samples) == 2 * VIDEO_SAMPLES_PER_FRAGMENT
    assert [c.decode_time for c in index.chunks] == [0, VIDEO_SAMPLES_PER_FRAGMENT * VIDEO_SAMPLE_DURATION]
    first = index.chunks[0]
    data = first.path.read_bytes()
    assert first.file_offset > len(PADDING)
    assert data[first.file_offset + first.length :] == b""
    assert sum(s.is_sync for s in index.samples.samples) == 2
    assert index.samples.chunk_layout == [(VIDEO_SAMPLES_PER_FRAGMENT, 1)] * 2


def test_decode_time_jump_is_closed_and_logged(tmp_path, caplog):
    samples = [(10, VIDEO_SAMPLE_DURATION, 0x02000000, 0)] * 4
    segments = [build_fragment("video", 0), build_media_segment(1, 1, 5000, samples, b"\x01" * 40)]
    _write_video(tmp_path / "80", segments)

    with caplog.at_level(logging.WARNING):
        index = index_stream(assemble_stream(_variant(tmp_path / "80")))

    assert index.chunks[1].decode_time == VIDEO_SAMPLES_PER_FRAGMENT * VIDEO_SAMPLE_DURATION
    assert "starts at 5000" in caplog.text


def test_declared_duration_mismatch_is_logged(tmp_path, caplog):
    _write_video(tmp_path / "80", [build_fragment("video", 0)])
    variant = _variant(tmp_path / "80", fragments={0: FragmentRecord(index=0, duration=2.0)})

    with caplog.at_level(logging.WARNING):
        index_stream(assemble_stream(variant))

    assert "metadata declares 2.000s" in caplog.text


def test_fragment_without_samples_for_track(tmp_path):
    _write_video(tmp_path / "80", [build_fragment("video", 0, track_id=9)])

    with pytest.raises(FragmentCorruptError, match="no samples"):
        index_stream(assemble_stream(_variant(tmp_path / "80")))


def test_sample_data_outside_fragment(tmp_path):
    segment = build_fragment("video", 0)
    _write_video(tmp_path / "80", [segment[:-100]])

    with pytest.raises(FragmentCorruptError) as exc_info:
        index_stream(assemble_stream(_variant(tmp_path / "80")))
    assert exc_info.value.fragment_index == 0


def _defaults_only_segment(sample_count, default_size=None, default_duration=None):
    """A moof whose single trun carries only a sample count and takes everything else from defaults."""
    flags, body = 0x020000, struct.pack(">I", 1)
    if default_duration is not None:
        flags |= 0x000008
        body += struct.pack(">I", default_duration)
    if default_size is not None:
        flags |= 0x000010
        body += struct.pack(">I", default_size)
    tfhd = build_full_box(b"tfhd", 0, flags, body)
    trun = build_full_box(b"trun", 0, 0x000001, struct.pack(">Ii", sample_count, 0))
    return build_box(b"moof", build_box(b"traf", tfhd + trun)) + build_box(b"mdat", b"\x01" * 64)


@pytest.mark.parametrize(
    "segment, message",
    [
        (_defaults_only_segment(20_000_000, default_duration=40), "no sample sizes"),
        (_defaults_only_segment(20_000_000, default_size=8, default_duration=40), "samples of 8 bytes"),
        (_defaults_only_segment(2, default_size=8), "no sample durations"),
    ],
)
def test_run_without_usable_defaults_is_corrupt(tmp_path, segment, message):
    _write_video(tmp_path / "80", [build_fragment("video", 0), segment])

    with pytest.raises(FragmentCorruptError, match=message) as exc_info:
        index_stream(assemble_stream(_variant(tmp_path / "80")))
    assert exc_info.value.fragment_index == 1


def test_missing_init_segment(tmp_path):
    directory = tmp_path / "80"
    directory.mkdir()
    (directory / "0.m4s").write_bytes(build_fragment("video", 0))

    with pytest.raises(FragmentCorruptError, match="init segment"):
        index_stream(assemble_stream(_variant(directory)))


def test_interleave_prefers_first_track_on_ties(tmp_path):
    _write_video(tmp_path / "80", [build_fragment("video", 0), build_fragment("video", 1)])
    video = index_stream(assemble_stream(_variant(tmp_path / "80")))
    audio_dir = tmp_path / "30280"
    audio_dir.mkdir()
    (audio_dir / "init.m4s").write_bytes(build_init_segment("audio"))
    for i in range(2):
        (audio_dir / f"{i}.m4s").write_bytes(build_fragment("audio", i))
    audio = index_stream(assemble_stream(_variant(audio_dir, kind="audio")))

    order = [(position, chunk.decode_time) for position, chunk in interleave_chunks([video, audio])]

    assert [position for position, _ in order] == [0, 1, 0, 1]
