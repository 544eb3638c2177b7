from pathlib import Path

import pytest

from cachemux.configs import SelectionPolicy
from cachemux.errors import IncompatiblePairError, NoPlayableStreamError
from cachemux.models import StreamVariant
from cachemux.selector import select_streams


def _variant(kind, quality, codec, order, title_id="12345"):
    return StreamVariant(
        kind=kind,
        quality=quality,
        codec=codec,
        fragment_dir=Path(f"/cache/{title_id}/{kind}{order}"),
        title_id=title_id,
        declaration_order=order,
    )


def _audio():
    return [_variant("audio", 30, "AAC", 10)]


def test_highest_quality_wins():
    videos = [_variant("video", 2, "H264", 0), _variant("video", 5, "H264", 1), _variant("video", 3, "H264", 2)]

    pair = select_streams({"video": videos, "audio": _audio()})

    assert pair.video.quality == 5


def test_codec_priority_breaks_quality_tie():
    videos = [_variant("video", 80, "HEVC", 0), _variant("video", 80, "H264", 1)]

    pair = select_streams({"video": videos, "audio": _audio()})
    assert pair.video.codec == "H264"

    policy = SelectionPolicy(video_codec_priority=["hevc", "h264"])
    pair = select_streams({"video": videos, "audio": _audio()}, policy)
    assert pair.video.codec == "HEVC"


def test_declaration_order_breaks_remaining_tie():
    videos = [_variant("video", 80, "H264", 0), _variant("video", 80, "H264", 1)]

    pair = select_streams({"video": videos, "audio": _audio()})

    assert pair.video.declaration_order == 0


def test_unlisted_codec_ranks_last():
    audios = [_variant("audio", 30, "MYSTERY", 0), _variant("audio", 30, "OPUS", 1)]

    pair = select_streams({"video": [_variant("video", 80, "H264", 2)], "audio": audios})

    assert pair.audio.codec == "OPUS"


def test_selection_is_deterministic():
    variants = {
        "video": [_variant("video", 80, "HEVC", 0), _variant("video", 80, "H264", 1)],
        "audio": [_variant("audio", 30, "AAC", 2), _variant("audio", 30, "AAC", 3)],
    }

    assert select_streams(variants) == select_streams(variants)


def test_missing_kind_raises():
    with pytest.raises(NoPlayableStreamError):
        select_streams({"video": [_variant("video", 80, "H264", 0)], "audio": []})


def test_forbidden_pair():
    policy = SelectionPolicy(forbidden_pairs=[("avc1", "flac")])
    variants = {"video": [_variant("video", 80, "H264", 0)], "audio": [_variant("audio", 50, "FLAC", 1)]}

    with pytest.raises(IncompatiblePairError) as exc_info:
        select_streams(variants, policy)
    assert exc_info.value.title_id == "12345"
